"""MFA challenge model."""

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from deskauth.database import Base


class MfaChallenge(Base):
    """Pending second-factor step after a successful password check.

    Carries no authorization beyond "may attempt MFA verification for this
    user". The raw token is handed to the client; only its digest is stored.
    """

    __tablename__ = "mfa_challenges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token_digest = Column(String(64), unique=True, nullable=False)  # SHA-256 hex
    user_id = Column(String(100), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    issued_at = Column(DateTime, server_default=func.now())
    expires_at = Column(DateTime, nullable=False)
    consumed_at = Column(DateTime, nullable=True)

    user = relationship("User")

    __table_args__ = (
        Index("idx_mfa_challenge_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<MfaChallenge(id={self.id}, user_id={self.user_id})>"
