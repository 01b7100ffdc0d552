from .models import CodeState, LanguageStruct, Problem, Submission, Team, generate_id

__all__ = ["CodeState", "LanguageStruct", "Problem", "Submission", "Team", "generate_id"]
