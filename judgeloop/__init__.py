"""
judgeloop: asynchronous judging pipeline for programming contests.

Submissions are dispatched to an external execution service, graded when
the service calls back, and folded into each team's score using the team's
best submission per problem.
"""

__version__ = "0.1.0"
