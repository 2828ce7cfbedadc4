from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Literal, Union

from .shield.classifier import EnvironmentProbe, InteractionKind

class ShieldConfigInfo(BaseModel):
    level: int
    timer: int
    features: List[str] = []

class ShieldLinkInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    slug: str
    title: str
    shield_enabled: bool = Field(alias="shieldEnabled")
    is_ultra_link: bool = Field(alias="isUltraLink")
    shield_config: ShieldConfigInfo = Field(alias="shieldConfig")

class ShieldActionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    link_id: int = Field(alias="linkId")
    action: str = Field(min_length=1, max_length=32)
    is_bot: bool = Field(default=False, alias="isBot")

# Session channel messages (client -> server)
class ProbeReport(BaseModel):
    has_graphics: bool = False
    has_webrtc: bool = False
    has_media_devices: bool = False
    screen_valid: bool = False
    viewport_valid: bool = False
    has_plugins: bool = False
    pixel_ratio_valid: bool = False
    has_permissions: bool = False
    has_languages: bool = False
    webdriver: bool = False
    automation_markers: bool = False

    def to_probe(self) -> EnvironmentProbe:
        return EnvironmentProbe.from_mapping(self.model_dump())

class ChannelHello(BaseModel):
    type: Literal["hello"]
    payload: str = Field(min_length=1)
    probe: Optional[ProbeReport] = None

class InteractionMessage(BaseModel):
    type: Literal["interaction"]
    kind: InteractionKind

class ProceedMessage(BaseModel):
    type: Literal["proceed"]

class ChannelMessage(BaseModel):
    message: Union[InteractionMessage, ProceedMessage] = Field(discriminator="type")
