from typing import Any, Mapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class InvokableTool(Protocol):
  name: str
  # executed by the completion service, never invoked locally
  remote: bool

  async def spec(self) -> dict: ...

  def parse_arguments(self, json_argument: Optional[str]) -> dict: ...

  async def invoke(self, arguments: dict, context_variables: Mapping[str, Any]) -> Any: ...
