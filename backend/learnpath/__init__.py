"""LearnPath backend: lesson scoring, progress tracking and study recommendations."""
