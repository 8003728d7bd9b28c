from .service import AccountDeletionResult, AccountService, DeletionGate, UserDeleter

__all__ = ["AccountDeletionResult", "AccountService", "DeletionGate", "UserDeleter"]
