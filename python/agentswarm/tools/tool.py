import json
import inspect
import re

from typing import Any, Callable, Dict, Mapping, Optional, Union, get_args, get_origin, get_type_hints
from functools import wraps
from docstring_parser import parse

from .protocol import InvokableTool
from ..logs.logs import InfoContext

CONTEXT_VARIABLES_PARAMETER = "context_variables"
MAX_JSON_SIZE = 1024 * 1024

TOOL_NAME_PATTERN = r"^[A-Za-z0-9_-]+$"


def validate_tool_name(name: str):
  if not isinstance(name, str) or re.match(TOOL_NAME_PATTERN, name) is None:
    raise ValueError(f"Tool name '{name}' may only contain [A-Za-z0-9_-] characters")


def describe_failure(e: BaseException) -> str:
  return f"Tool execution failed: {type(e).__name__}: {e}"


def parse_json_arguments(json_argument: Optional[str]) -> dict:
  """Parse a raw JSON argument string into a dict, with a size limit."""

  if json_argument is None or json_argument.strip() == "":
    return {}

  if len(json_argument) > MAX_JSON_SIZE:
    raise ValueError(f"JSON argument too large: {len(json_argument):,} bytes (max: {MAX_JSON_SIZE:,})")

  try:
    args = json.loads(json_argument)
  except json.JSONDecodeError as e:
    raise ValueError(f"Invalid JSON format: {str(e)}")

  if not isinstance(args, dict):
    raise ValueError(f"JSON argument must be an object, got {type(args).__name__}")

  return args


class _ToolLogging:
  _logger = None

  @classmethod
  def class_logger(cls):
    if _ToolLogging._logger is None:
      from ..logs.logs import get_logger

      _ToolLogging._logger = get_logger("tool")
    return _ToolLogging._logger


class Tool(InvokableTool, InfoContext, _ToolLogging):
  """
  A locally executed tool backed by a Python function.

  The JSON schema is derived from the signature, with parameter types taken
  from type hints or the docstring. A parameter named `context_variables` is
  hidden from the schema and receives the run's context variables.
  """

  def __init__(self, func: Callable, name: Optional[str] = None, description: Optional[str] = None):
    self.logger = Tool.class_logger()
    f_name, spec = function_spec(func)
    if name is not None:
      spec["function"]["name"] = name
    if description is not None:
      spec["function"]["description"] = description
    self.name = spec["function"]["name"]
    self.remote = False
    self.signature = inspect.signature(func)
    self.wants_context = CONTEXT_VARIABLES_PARAMETER in self.signature.parameters
    self.original = func
    self.func = wrap(func)
    self._spec = spec
    validate_tool_name(self.name)

  def __repr__(self):
    return f"Tool(name={self.name!r})"

  async def spec(self) -> dict:
    return self._spec

  def parse_arguments(self, json_argument: Optional[str]) -> dict:
    """Parse and validate JSON arguments against the function signature."""
    args = parse_json_arguments(json_argument)
    args.pop(CONTEXT_VARIABLES_PARAMETER, None)
    self._validate_arguments_against_signature(args)
    return self._coerce_argument_types(args)

  async def invoke(self, arguments: dict, context_variables: Mapping[str, Any]) -> Any:
    with self.info(f"Invoke tool: '{self.name}'", f"invoked tool: '{self.name}'"):
      self.logger.debug(f"The tool arguments are: {arguments}")
      kwargs = dict(arguments)
      if self.wants_context:
        kwargs[CONTEXT_VARIABLES_PARAMETER] = context_variables
      result = await self.func(**kwargs)
      self.logger.debug(f"The tool call succeeded: {result!r}")
      return result

  def _validate_arguments_against_signature(self, args: dict) -> None:
    accepts_kwargs = any(p.kind == inspect.Parameter.VAR_KEYWORD for p in self.signature.parameters.values())
    param_names = {n for n in self.signature.parameters if n != CONTEXT_VARIABLES_PARAMETER}

    extra_args = set(args) - param_names
    if extra_args and not accepts_kwargs:
      raise ValueError(f"Unexpected arguments: {', '.join(sorted(extra_args))}")

    missing_required = set()
    for param_name, param in self.signature.parameters.items():
      if param_name == CONTEXT_VARIABLES_PARAMETER:
        continue
      if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
        continue
      if param.default == inspect.Parameter.empty and param_name not in args:
        missing_required.add(param_name)

    if missing_required:
      raise ValueError(f"Missing required arguments: {', '.join(sorted(missing_required))}")

  def _coerce_argument_types(self, args: dict) -> dict:
    """Coerce argument types to match function type hints.

    JSON may carry strings where integers, floats or bools are expected.
    """
    try:
      type_hints = get_type_hints(self.original)
    except Exception:
      return args

    coerced_args = {}
    for arg_name, arg_value in args.items():
      if arg_name not in type_hints:
        coerced_args[arg_name] = arg_value
        continue

      expected_type = type_hints[arg_name]

      # Optional[X] and X | None coerce to X
      origin = get_origin(expected_type)
      if origin is Union or type(expected_type).__name__ == "UnionType":
        type_args = get_args(expected_type)
        if type_args:
          expected_type = next((t for t in type_args if t is not type(None)), expected_type)

      try:
        coerced_value = coerce_value(arg_value, expected_type)
        if type(arg_value) is not type(coerced_value):
          self.logger.debug(
            f"Coerced argument '{arg_name}': {type(arg_value).__name__}({arg_value!r}) -> "
            f"{type(coerced_value).__name__}({coerced_value!r})"
          )
        coerced_args[arg_name] = coerced_value
      except (ValueError, TypeError):
        type_name = getattr(expected_type, "__name__", str(expected_type))
        raise ValueError(
          f"Argument '{arg_name}' has invalid type: expected {type_name}, "
          f"got {type(arg_value).__name__} (value: {arg_value!r})"
        )

    return coerced_args


class ConfiguredTool(InvokableTool, InfoContext, _ToolLogging):
  """
  A tool declared as `{type: "function", function: {name, description, parameters}, handler}`.

  The handler receives the parsed arguments as one dict. Required parameters
  from the schema are checked before the handler runs.
  """

  def __init__(self, spec: dict, handler: Optional[Callable] = None, remote: bool = False):
    self.logger = ConfiguredTool.class_logger()
    function = spec.get("function") or {}
    self.name = function.get("name")
    validate_tool_name(self.name)
    if handler is None and not remote:
      raise ValueError(f"Tool '{self.name}' needs a handler unless it is remote")

    parameters = function.get("parameters") or {"type": "object", "properties": {}, "required": []}
    self._spec = {
      "type": "function",
      "function": {
        "name": self.name,
        "description": function.get("description") or f"Function {self.name}",
        "parameters": parameters,
      },
    }
    self.required = list(parameters.get("required", []))
    self.remote = remote
    self.handler = handler
    self.wants_context = handler is not None and _accepts_context(handler)

  @classmethod
  def from_config(cls, config: Mapping[str, Any]) -> "ConfiguredTool":
    spec = {"type": config.get("type", "function"), "function": config.get("function", {})}
    return cls(spec, config.get("handler"), bool(config.get("remote", False)))

  def __repr__(self):
    return f"ConfiguredTool(name={self.name!r}, remote={self.remote})"

  async def spec(self) -> dict:
    return self._spec

  def parse_arguments(self, json_argument: Optional[str]) -> dict:
    args = parse_json_arguments(json_argument)
    missing = [p for p in self.required if p not in args]
    if missing:
      raise ValueError(f"Missing required arguments: {', '.join(sorted(missing))}")
    return args

  async def invoke(self, arguments: dict, context_variables: Mapping[str, Any]) -> Any:
    if self.remote:
      raise RuntimeError(f"Tool '{self.name}' is executed by the completion service")
    with self.info(f"Invoke tool: '{self.name}'", f"invoked tool: '{self.name}'"):
      self.logger.debug(f"The tool arguments are: {arguments}")
      if self.wants_context:
        result = self.handler(arguments, context_variables=context_variables)
      else:
        result = self.handler(arguments)
      if inspect.isawaitable(result):
        result = await result
      self.logger.debug(f"The tool call succeeded: {result!r}")
      return result


def as_tool(tool: Union[InvokableTool, Callable, Mapping[str, Any]]) -> InvokableTool:
  """Accept a tool object, a tool config dict or a plain function."""
  if isinstance(tool, Mapping):
    return ConfiguredTool.from_config(tool)
  if isinstance(tool, InvokableTool):
    return tool
  if callable(tool):
    return Tool(tool)
  raise TypeError(f"Cannot build a tool from {type(tool).__name__}")


def _accepts_context(handler: Callable) -> bool:
  try:
    return CONTEXT_VARIABLES_PARAMETER in inspect.signature(handler).parameters
  except (TypeError, ValueError):
    return False


TRUE_STRINGS = ("true", "1", "yes", "on")
FALSE_STRINGS = ("false", "0", "no", "off")


def _to_int(value):
  if isinstance(value, (str, bool)) or (isinstance(value, float) and value.is_integer()):
    return int(value)
  raise TypeError(f"Cannot coerce {type(value).__name__} to int")


def _to_float(value):
  if isinstance(value, (str, int)):
    return float(value)
  raise TypeError(f"Cannot coerce {type(value).__name__} to float")


def _to_bool(value):
  if isinstance(value, str):
    if value.lower() in TRUE_STRINGS:
      return True
    if value.lower() in FALSE_STRINGS:
      return False
    raise ValueError(f"Cannot coerce string '{value}' to bool")
  if isinstance(value, (int, float)):
    return bool(value)
  raise TypeError(f"Cannot coerce {type(value).__name__} to bool")


def _to_str(value):
  return json.dumps(value) if isinstance(value, (dict, list)) else str(value)


SCALAR_COERCIONS = {int: _to_int, float: _to_float, bool: _to_bool, str: _to_str}


def coerce_value(value, expected_type):
  """Coerce a single JSON value to the expected Python type.

  Values of unknown or unsupported types pass through unchanged.

  Raises:
    ValueError: If coercion is not possible
    TypeError: If types are incompatible
  """
  if value is None:
    return None

  origin = get_origin(expected_type)
  if origin is not None:
    # generics: only the container type is checked
    if isinstance(origin, type) and isinstance(value, origin):
      return value
    if origin is list and isinstance(value, (tuple, set)):
      return list(value)
    raise TypeError(f"Cannot coerce {type(value).__name__} to {getattr(origin, '__name__', origin)}")

  coerce = SCALAR_COERCIONS.get(expected_type)
  if coerce is None:
    return value
  if type(value) is expected_type:
    return value
  if isinstance(value, expected_type) and expected_type is not int:
    return value
  return coerce(value)


def wrap(f) -> Callable:
  @wraps(f)
  async def wrapper(**kwargs):
    r = f(**kwargs)
    if inspect.isawaitable(r):
      return await r
    return r

  return wrapper


def function_spec(f) -> tuple[str, dict]:
  f_name = f.__name__
  f_description = _short_description(f) or f"Function {f_name}"
  f_parameters = parameters_spec(f)
  return f_name, {
    "type": "function",
    "function": {"name": f_name, "description": f_description, "parameters": f_parameters},
  }


def _short_description(f) -> Optional[str]:
  if not f.__doc__:
    return None
  parsed = parse(f.__doc__)
  parts = [p for p in (parsed.short_description, parsed.long_description) if p]
  return "\n\n".join(parts) if parts else inspect.cleandoc(f.__doc__)


def parameters_spec(f) -> dict:
  f_parameters = {"type": "object", "properties": {}, "required": []}

  signature = inspect.signature(f)
  try:
    type_hints = get_type_hints(f)
  except Exception:
    type_hints = {}

  p_info_from_docstring = parameter_info_from_docstring(f.__doc__)
  for p_name, p in signature.parameters.items():
    if p_name == CONTEXT_VARIABLES_PARAMETER:
      continue
    if p.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
      continue

    # the docstring type wins over the type hint
    hint = type_hints.get(p_name)
    p_type = _type_name(hint) if hint is not None else "Any"
    doc_type, doc_description = p_info_from_docstring.get(p_name, (None, None))
    p_type = to_json_schema_type(doc_type or p_type)

    f_parameters["properties"][p_name] = {
      "type": p_type,
      "description": doc_description or f"parameter {p_name}",
    }

    if p.default == inspect.Parameter.empty:
      f_parameters["required"].append(p_name)

  return f_parameters


def _type_name(hint) -> str:
  origin = get_origin(hint)
  if origin is Union or type(hint).__name__ == "UnionType":
    args = [a for a in get_args(hint) if a is not type(None)]
    if len(args) == 1:
      return _type_name(args[0])
  if origin is not None:
    return getattr(origin, "__name__", str(origin))
  return getattr(hint, "__name__", str(hint))


def to_json_schema_type(p_type: str) -> str:
  return {
    "bool": "boolean",
    "int": "integer",
    "float": "number",
    "str": "string",
    "list": "array",
    "List": "array",
    "tuple": "array",
    "dict": "object",
    "Dict": "object",
  }.get(p_type, "string")


def parameter_info_from_docstring(docstring) -> Dict[str, tuple]:
  p_info = {}
  if not docstring:
    return p_info

  parsed = parse(docstring)
  for parameter in parsed.params:
    p_info[parameter.arg_name] = (parameter.type_name, parameter.description)

  return p_info
