"""URLReplaceRule URL 替换规则模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from randomapi.utils.timeutil import utcnow


class URLReplaceRule(SQLModel, table=True):
    """对解析出的 URL 做子串替换."""

    __tablename__ = "url_replace_rules"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(description="规则名称")
    endpoint_id: int | None = Field(
        default=None, index=True, description="所属端点，为空表示全局规则"
    )
    from_url: str = Field(description="被替换的子串")
    to_url: str = Field(description="替换为")
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
