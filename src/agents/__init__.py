from src.agents.verification_poller import VerificationPollerAgent
from src.agents.verification_poller import app as verification_poller_app

__all__ = ["VerificationPollerAgent", "verification_poller_app"]
