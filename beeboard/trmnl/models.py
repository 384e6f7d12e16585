"""TRMNL API models."""

from typing import Optional

from pydantic import BaseModel


class DisplayResponse(BaseModel):
    """Response for /api/display endpoint."""

    status: int = 0
    image_url: str
    filename: str
    refresh_rate: int = 900  # seconds until the device should wake again
    update_firmware: bool = False
    firmware_url: Optional[str] = None
    reset_firmware: bool = False
    special_function: str = "sleep"
    image_url_timeout: int = 30
