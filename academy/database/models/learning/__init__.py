from .course import Course, Lesson

__all__ = ["Course", "Lesson"]
