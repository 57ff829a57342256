"""Read-only course content: courses, lessons, quizzes, assignments and rosters."""
