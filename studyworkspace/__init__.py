"""StudyWorkspace backend: study materials, AI study aids and session scheduling."""
