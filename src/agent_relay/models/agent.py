"""Agent configuration snapshot."""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class AgentConfig:
    """Immutable snapshot of a remote agent's configuration."""

    id: str
    name: str
    description: str = ""
    capabilities: frozenset[str] = field(default_factory=frozenset)
    model: str = ""
    provider: str = ""
    status: str = ""
    temperature: Optional[float] = None
    instructions: Optional[str] = None
    picture_url: Optional[str] = None
    tags: tuple[str, ...] = ()
    supported_output_formats: tuple[str, ...] = ()

    @classmethod
    def from_platform(cls, data: dict[str, Any], fallback_id: str = "") -> "AgentConfig":
        """Create AgentConfig from an agent_configurations API payload."""
        # Single-agent responses wrap the payload, list responses don't
        agent = data.get("agentConfiguration") or data
        model = agent.get("model") or {}
        actions = agent.get("actions") or []

        return cls(
            id=agent.get("sId") or agent.get("id") or fallback_id,
            name=agent.get("name") or "Unknown Agent",
            description=agent.get("description") or "",
            capabilities=frozenset(
                action["name"] for action in actions if isinstance(action, dict) and action.get("name")
            ),
            model=model.get("modelId", ""),
            provider=model.get("providerId", ""),
            status=agent.get("status") or "",
            temperature=model.get("temperature"),
            instructions=agent.get("instructions"),
            picture_url=agent.get("pictureUrl"),
            tags=tuple(agent.get("tags") or ()),
            supported_output_formats=tuple(agent.get("supportedOutputFormats") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["capabilities"] = sorted(self.capabilities)
        data["tags"] = list(self.tags)
        data["supported_output_formats"] = list(self.supported_output_formats)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentConfig":
        """Inverse of ``to_dict``; used when reading the cache."""
        return cls(
            id=data["id"],
            name=data.get("name", "Unknown Agent"),
            description=data.get("description", ""),
            capabilities=frozenset(data.get("capabilities") or ()),
            model=data.get("model", ""),
            provider=data.get("provider", ""),
            status=data.get("status", ""),
            temperature=data.get("temperature"),
            instructions=data.get("instructions"),
            picture_url=data.get("picture_url"),
            tags=tuple(data.get("tags") or ()),
            supported_output_formats=tuple(data.get("supported_output_formats") or ()),
        )

    def summary(self) -> str:
        """Human-readable one-screen description of the agent."""
        capabilities = ", ".join(sorted(self.capabilities)) or "none"
        return (
            f"ID: {self.id}\n"
            f"Name: {self.name}\n"
            f"Description: {self.description}\n"
            f"Model: {self.provider}/{self.model}\n"
            f"Capabilities: {capabilities}"
        )
