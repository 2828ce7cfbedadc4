from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from .database import Base

class Link(Base):
    __tablename__ = "links"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String, unique=True, index=True, nullable=False)
    title = Column(String, nullable=False, default="")
    description = Column(Text, nullable=True)
    destination = Column(String, nullable=False)
    clicks = Column(Integer, default=0)
    views = Column(Integer, default=0)
    shield_enabled = Column(Boolean, default=False)
    is_ultra_link = Column(Boolean, default=False) # Cloaking for classified bots
    is_direct = Column(Boolean, default=False) # Single-hop, auto-confirmed visitors
    shield_config = Column(Text, nullable=True) # Raw JSON, parsed per visit
    password = Column(String, nullable=True) # Owned by the unlock flow
    meta_title = Column(String, nullable=True)
    meta_description = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    analytics = relationship("Click", back_populates="link", cascade="all, delete-orphan")
    shield_events = relationship("ShieldEvent", back_populates="link", cascade="all, delete-orphan")

class Click(Base):
    __tablename__ = "clicks"

    id = Column(Integer, primary_key=True, index=True)
    link_id = Column(Integer, ForeignKey("links.id"), nullable=False)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())
    referer = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    device_type = Column(String, nullable=True)

    link = relationship("Link", back_populates="analytics")

class ShieldEvent(Base):
    __tablename__ = "shield_events"

    id = Column(Integer, primary_key=True, index=True)
    link_id = Column(Integer, ForeignKey("links.id"), nullable=False, index=True)
    event_type = Column(String, nullable=False) # shield_proceed
    verdict_was_bot = Column(Boolean, default=False)
    user_agent = Column(String, nullable=True)
    referer = Column(String, nullable=True)
    country = Column(String, nullable=True)
    device = Column(String, nullable=True) # bot, mobile, desktop
    timestamp = Column(DateTime(timezone=True), server_default=func.now())

    link = relationship("Link", back_populates="shield_events")
