"""
CoursePilot - Course progression and assessment engine.

Turns a course hierarchy plus per-learner completion records into a
resume position and progress percentages, and grades assessment
attempts with mixed question types.
"""

__version__ = "0.1.0"
