from ragchat.auth.token import TokenPayload, get_current_user, verify_token

__all__ = ["TokenPayload", "get_current_user", "verify_token"]
