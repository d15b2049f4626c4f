from dataclasses import dataclass


@dataclass(frozen=True)
class Caller:
    """Authenticated identity attached to a request by the upstream auth layer"""
    user_id: int
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def can_act_for(self, user_id: int) -> bool:
        """True for the user themselves and for admins"""
        return self.is_admin or self.user_id == user_id
