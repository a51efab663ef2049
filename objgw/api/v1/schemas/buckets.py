"""Pydantic schemas for bucket endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from objgw.infra.storage.client import LifecycleRule


class MessageOut(BaseModel):
    """Plain confirmation returned by write endpoints."""

    message: str


class BucketListOut(BaseModel):
    buckets: list[str]


class LifecycleRuleIn(BaseModel):
    """Request body for setting a bucket lifecycle rule.

    Defaults move objects under ``temp/`` to GLACIER after 30 days.
    """

    rule_id: str = Field(default="MoveToGlacierAfter30Days", min_length=1, max_length=255)
    prefix: str = "temp/"
    transition_days: int = Field(default=30, ge=0)
    storage_class: str = Field(default="GLACIER", min_length=1)
    enabled: bool = True

    def to_rule(self) -> LifecycleRule:
        return LifecycleRule(
            rule_id=self.rule_id,
            prefix=self.prefix,
            transition_days=self.transition_days,
            storage_class=self.storage_class,
            enabled=self.enabled,
        )


class LifecycleRuleOut(BaseModel):
    bucket: str
    rule_id: str
    prefix: str
    transition_days: int
    storage_class: str
    enabled: bool
