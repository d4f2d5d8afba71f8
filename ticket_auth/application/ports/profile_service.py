from typing import Any, Dict, Optional, Protocol


class ProfileService(Protocol):
    async def create_profile(self, account_id: str, name: Optional[str], picture: Optional[str]) -> Dict[str, Any]:
        ...

    async def get_profile(self, account_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def update_profile(self, account_id: str, **fields: Any) -> Dict[str, Any]:
        ...

    async def delete_profile(self, account_id: str) -> None:
        ...
