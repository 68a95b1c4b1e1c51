"""studysync: timetable and course-material sync with study planning for students."""

__version__ = "0.1.0"
