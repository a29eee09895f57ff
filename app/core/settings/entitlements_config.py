"""Per user-type message quotas."""

from typing import Literal

from pydantic import BaseModel

UserType = Literal["guest", "regular"]


class EntitlementsConfig(BaseModel, frozen=True):
    """Maximum messages per rolling 24h window by user type."""

    guest_max_messages_per_day: int
    regular_max_messages_per_day: int

    def max_messages_per_day(self, user_type: UserType) -> int:
        """Get the daily message limit for a user type."""
        if user_type == "guest":
            return self.guest_max_messages_per_day
        return self.regular_max_messages_per_day
