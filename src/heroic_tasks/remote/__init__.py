"""Firebase REST clients (Firestore documents + email/password auth)."""
