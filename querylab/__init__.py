"""querylab - document query demo backend with JWT sessions."""
