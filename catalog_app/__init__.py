"""Vehicle catalog entity resolution and normalization engine."""
