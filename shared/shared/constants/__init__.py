from shared.constants.roles import SELF_REGISTRATION_ROLES, Role

__all__ = ["Role", "SELF_REGISTRATION_ROLES"]
