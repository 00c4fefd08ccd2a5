from afritok.db.models.auth_attempt import AuthAttempt
from afritok.db.models.login_history import LoginHistory
from afritok.db.models.otp_challenge import OtpChallenge
from afritok.db.models.user import User

__all__ = ["AuthAttempt", "LoginHistory", "OtpChallenge", "User"]
