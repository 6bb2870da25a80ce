from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass
class UserDto:
    id: str
    name: str
    role: str
    fcm_token: Optional[str] = None


class UserRepository(Protocol):
    def get_by_id(self, user_id: str) -> Optional[UserDto]:
        ...

    def get_push_token(self, user_id: str) -> Optional[str]:
        ...

    def clear_push_token(self, user_id: str, token: str) -> None:
        """Drop the stored token, but only if it is still the given one."""
        ...
