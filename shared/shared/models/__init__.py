from shared.models.user import CurrentIdentity

__all__ = ["CurrentIdentity"]
