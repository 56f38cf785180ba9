"""
Tests for the agent loop: completion, tool dispatch, handoff, repeat.

The loop is driven by mock models so every test controls exactly what the
"model" answers on each turn.
"""

import asyncio
import json

import httpx
import openai
import pytest

from agentswarm.agents import AgentDefinition
from agentswarm.conversation import (
  AssistantMessage,
  FunctionToolCall,
  ToolCall,
  ToolCallResponseMessage,
  UserMessage,
)
from agentswarm.errors import ExecutionError, MaxTurnsExceededError, RateLimitError, UnauthorizedToolError
from agentswarm.execution import AgentLoop, LoopResult, TurnEnd, TurnStart
from agentswarm.models import CompletionGateway, ContentDelta, ToolCallDelta
from agentswarm.tools import Result, SwitchAgentTool, ToolRegistry
from tests.mock_utils import ErrorMockModel, MockModel, RepeatingIdModel, tool_call


def echo(text: str) -> str:
  """Repeat the text."""
  return text


def lookup_customer(name: str) -> str:
  """Find a customer by name."""
  return json.dumps({"name": name, "id": "c-42"})


def get_balance(customer_id: str) -> str:
  """Get the balance of a customer."""
  return f"balance of {customer_id}: 100"


AUDITOR = AgentDefinition(
  "auditor",
  lambda ctx: f"You audit customer {ctx.get('customer_id', 'unknown')}.",
  allowed_tools=("get_balance",),
)


def escalate(customer_id: str):
  """Hand the customer over to the auditor."""
  return Result("escalated", agent=AUDITOR, context_variables={"customer_id": customer_id})


TELLER = AgentDefinition("teller", "You are a bank teller.", allowed_tools=("echo", "lookup_customer", "escalate"))


def make_loop(model, agents=None, **kwargs) -> AgentLoop:
  tools = ToolRegistry([echo, lookup_customer, get_balance, escalate])
  agents = agents or {"teller": TELLER, "auditor": AUDITOR}
  if len(agents) > 1:
    tools.register(SwitchAgentTool(list(agents)), always_allowed=True)
  gateway = CompletionGateway(default_model="mock", models={"mock": model})
  return AgentLoop(gateway, tools, agents, **kwargs)


async def stream_result(loop: AgentLoop, *args, **kwargs):
  items = [item async for item in loop.run_and_stream(*args, **kwargs)]
  assert isinstance(items[-1], LoopResult)
  return items, items[-1]


@pytest.mark.core
class TestAgentLoop:
  @pytest.mark.asyncio
  async def test_answer_without_tools(self):
    model = MockModel([{"content": "Hello there"}])
    result = await make_loop(model).run(TELLER, [UserMessage("hi")])

    assert result.turns == 1
    assert result.content == "Hello there"
    assert result.agent is TELLER
    assert result.messages == [AssistantMessage("Hello there", sender="teller")]

  @pytest.mark.asyncio
  async def test_tool_call_then_answer(self):
    model = MockModel(
      [
        {"tool_calls": [tool_call("echo", '{"text": "hi"}')]},
        {"content": "hi"},
      ]
    )
    result = await make_loop(model).run(TELLER, [UserMessage("say hi")])

    assert model.call_count == 2
    assert result.turns == 2
    assert [m.role.value for m in result.messages] == ["assistant", "tool", "assistant"]
    tool_message = result.messages[1]
    assert isinstance(tool_message, ToolCallResponseMessage)
    assert tool_message.content == "hi"
    assert tool_message.tool_call_id == result.messages[0].tool_calls[0].id
    assert result.content == "hi"

  @pytest.mark.asyncio
  async def test_second_request_carries_the_tool_result(self):
    model = MockModel([{"tool_calls": [tool_call("echo", '{"text": "hi"}')]}, {"content": "done"}])
    await make_loop(model).run(TELLER, [UserMessage("say hi")])

    wire = model.requests[1]["messages"]
    assert [m["role"] for m in wire] == ["system", "user", "assistant", "tool"]
    assert wire[2]["content"] is None
    assert wire[3] == {"role": "tool", "tool_call_id": "tool_call_0", "name": "echo", "content": "hi"}

  @pytest.mark.asyncio
  async def test_unknown_tool_lets_the_model_recover(self):
    model = MockModel([{"tool_calls": [tool_call("doStuff")]}, {"content": "Sorry, I cannot do that."}])
    result = await make_loop(model).run(TELLER, [UserMessage("do stuff")])

    assert result.messages[1].content == "Error: Tool doStuff not found."
    assert result.content == "Sorry, I cannot do that."
    assert model.call_count == 2

  @pytest.mark.asyncio
  async def test_caller_messages_are_not_repeated(self):
    history = [UserMessage("hi"), AssistantMessage("hello", sender="teller"), UserMessage("again")]
    model = MockModel([{"content": "hello again"}])
    result = await make_loop(model).run(TELLER, history)

    assert result.messages == [AssistantMessage("hello again", sender="teller")]
    assert len(model.requests[0]["messages"]) == 4

  @pytest.mark.asyncio
  async def test_context_variables_are_returned(self):
    model = MockModel([{"tool_calls": [tool_call("escalate", '{"customer_id": "c-42"}')]}, {"content": "ok"}])
    result = await make_loop(model).run(TELLER, [UserMessage("escalate")], {"branch": "north"})
    assert result.context_variables == {"branch": "north", "customer_id": "c-42"}


@pytest.mark.core
class TestMaxTurns:
  @pytest.mark.asyncio
  @pytest.mark.error_handling
  async def test_exceeding_max_turns(self):
    model = MockModel([{"tool_calls": [tool_call("echo", '{"text": "again"}')]} for _ in range(10)])
    with pytest.raises(MaxTurnsExceededError) as e:
      await make_loop(model, max_turns=3).run(TELLER, [UserMessage("loop forever")])

    assert isinstance(e.value, ExecutionError)
    assert e.value.max_turns == 3
    assert model.call_count == 3

  @pytest.mark.asyncio
  async def test_per_run_max_turns_overrides_default(self):
    model = MockModel([{"tool_calls": [tool_call("echo", '{"text": "again"}')]} for _ in range(10)])
    with pytest.raises(MaxTurnsExceededError):
      await make_loop(model, max_turns=30).run(TELLER, [UserMessage("loop")], max_turns=2)
    assert model.call_count == 2

  @pytest.mark.asyncio
  async def test_final_answer_on_the_last_turn(self):
    model = MockModel([{"tool_calls": [tool_call("echo", '{"text": "x"}')]}, {"content": "done"}])
    result = await make_loop(model, max_turns=2).run(TELLER, [UserMessage("go")])
    assert result.content == "done"

  def test_invalid_max_turns(self):
    with pytest.raises(ValueError):
      make_loop(MockModel(), max_turns=0)


@pytest.mark.core
class TestHandoff:
  @pytest.mark.asyncio
  async def test_next_request_uses_the_new_agent(self):
    model = MockModel(
      [
        {"tool_calls": [tool_call("escalate", '{"customer_id": "c-42"}')]},
        {"tool_calls": [tool_call("get_balance", '{"customer_id": "c-42"}')]},
        {"content": "The balance is 100."},
      ]
    )
    result = await make_loop(model).run(TELLER, [UserMessage("audit c-42")])

    assert result.agent is AUDITOR
    assert model.system_prompts() == [
      "You are a bank teller.",
      "You audit customer c-42.",
      "You audit customer c-42.",
    ]
    assert model.tool_names(0) == ["echo", "lookup_customer", "escalate", "switch_agent"]
    assert model.tool_names(1) == ["get_balance", "switch_agent"]
    assert result.messages[-1].sender == "auditor"

  @pytest.mark.asyncio
  async def test_switch_agent_adds_instructions(self):
    model = MockModel(
      [
        {"tool_calls": [tool_call("lookup_customer", '{"name": "Ada"}')]},
        {"tool_calls": [tool_call("switch_agent", '{"to": "auditor"}')]},
        {"content": "Audited."},
      ]
    )
    script = "$1 = lookup_customer(name: Ada)\n$2 = get_balance(customer_id: $1.id)"
    result = await make_loop(model).run(TELLER, [UserMessage("audit Ada")], script=script)

    assert result.agent is AUDITOR
    switch_message = result.messages[4]
    assert isinstance(switch_message, UserMessage)
    assert "Now you are acting as auditor agent" in switch_message.content
    assert "completed step 2" in switch_message.content
    assert '"id": "c-42"' in switch_message.content
    assert script in switch_message.content
    assert result.content == "Audited."

  @pytest.mark.asyncio
  @pytest.mark.error_handling
  async def test_unauthorized_tool_is_fatal(self):
    model = MockModel([{"tool_calls": [tool_call("get_balance", '{"customer_id": "c-42"}')]}])
    with pytest.raises(UnauthorizedToolError):
      await make_loop(model).run(TELLER, [UserMessage("balance?")])
    assert model.call_count == 1


class ScriptedTransfer:
  def __init__(self, successors):
    self.successors = list(successors)
    self.responses = []

  def should_transfer_manually(self, content: str) -> bool:
    self.responses.append(content)
    return bool(self.successors)

  async def next_agent(self, content, context_variables):
    return self.successors.pop(0)


class RoutingTransfer:
  """Hands over to the agent named after `route:` in the final text."""

  def should_transfer_manually(self, content: str) -> bool:
    return content.startswith("route:")

  async def next_agent(self, content, context_variables):
    # let the other session run before deciding
    await asyncio.sleep(0.01)
    return content.removeprefix("route:")


CLOSER = AgentDefinition("closer", "You close accounts.")


class TestManualTransfer:
  @pytest.mark.asyncio
  async def test_transfer_without_tool_call(self):
    transfer = ScriptedTransfer(["auditor"])
    teller = AgentDefinition("teller", "You are a bank teller.", transfer=transfer)
    model = MockModel([{"content": "Passing you on."}, {"content": "Auditor here."}])

    result = await make_loop(model, {"teller": teller, "auditor": AUDITOR}).run(teller, [UserMessage("hi")])

    assert transfer.responses == ["Passing you on."]
    assert result.agent is AUDITOR
    assert result.turns == 2
    assert result.content == "Auditor here."

  @pytest.mark.asyncio
  async def test_no_successor_ends_the_run(self):
    transfer = ScriptedTransfer([None])
    teller = AgentDefinition("teller", transfer=transfer)
    model = MockModel([{"content": "Bye."}])

    result = await make_loop(model, {"teller": teller}).run(teller, [UserMessage("hi")])
    assert result.agent is teller
    assert result.turns == 1

  @pytest.mark.asyncio
  async def test_next_agent_sees_the_context_variables(self):
    seen = []

    class Recording(ScriptedTransfer):
      async def next_agent(self, content, context_variables):
        seen.append((content, dict(context_variables)))
        return await super().next_agent(content, context_variables)

    teller = AgentDefinition("teller", transfer=Recording([None]))
    await make_loop(MockModel([{"content": "Done."}]), {"teller": teller}).run(
      teller, [UserMessage("hi")], {"customer_id": "c-42"}
    )
    assert seen == [("Done.", {"customer_id": "c-42"})]

  @pytest.mark.asyncio
  @pytest.mark.concurrent
  async def test_concurrent_runs_share_one_policy(self):
    teller = AgentDefinition("teller", "You are a bank teller.", transfer=RoutingTransfer())
    agents = {"teller": teller, "auditor": AUDITOR, "closer": CLOSER}
    to_auditor = make_loop(MockModel([{"content": "route:auditor"}, {"content": "Auditor here."}]), agents)
    to_closer = make_loop(MockModel([{"content": "route:closer"}, {"content": "Closer here."}]), agents)

    first, second = await asyncio.gather(
      to_auditor.run(teller, [UserMessage("audit me")]),
      to_closer.run(teller, [UserMessage("close my account")]),
    )

    assert first.agent is AUDITOR
    assert first.content == "Auditor here."
    assert second.agent is CLOSER
    assert second.content == "Closer here."


class TestRepeatedToolCallIds:
  @pytest.mark.asyncio
  async def test_ids_repeated_across_turns_are_replaced(self):
    model = RepeatingIdModel(
      [
        {"tool_calls": [tool_call("echo", '{"text": "one"}')]},
        {"tool_calls": [tool_call("echo", '{"text": "two"}')]},
        {"content": "done"},
      ]
    )

    result = await make_loop(model).run(TELLER, [UserMessage("go")])

    assert result.content == "done"
    calls = [m.tool_calls[0].id for m in result.messages if isinstance(m, AssistantMessage) and m.tool_calls]
    responses = [m for m in result.messages if isinstance(m, ToolCallResponseMessage)]
    assert calls[0] == "tool_call_0"
    assert calls[1] != "tool_call_0"
    assert [r.tool_call_id for r in responses] == calls
    assert [r.content for r in responses] == ["one", "two"]

  @pytest.mark.asyncio
  async def test_ids_repeated_within_a_response_are_replaced(self):
    model = RepeatingIdModel(
      [
        {"tool_calls": [tool_call("echo", '{"text": "a"}'), tool_call("echo", '{"text": "b"}')]},
        {"content": "done"},
      ]
    )

    result = await make_loop(model).run(TELLER, [UserMessage("go")])

    ids = [tc.id for tc in result.messages[0].tool_calls]
    assert len(set(ids)) == 2
    assert [m.tool_call_id for m in result.messages[1:3]] == ids
    assert [m.content for m in result.messages[1:3]] == ["a", "b"]

  @pytest.mark.asyncio
  async def test_streamed_ids_are_replaced(self):
    model = RepeatingIdModel(
      [
        {"tool_calls": [tool_call("echo", '{"text": "one"}')]},
        {"tool_calls": [tool_call("echo", '{"text": "two"}')]},
        {"content": "done"},
      ]
    )

    _, result = await stream_result(make_loop(model), TELLER, [UserMessage("go")])
    assert result.content == "done"
    assert len({m.tool_call_id for m in result.messages if isinstance(m, ToolCallResponseMessage)}) == 2

  @pytest.mark.asyncio
  async def test_history_ids_are_not_reused(self):
    history = [
      UserMessage("earlier"),
      AssistantMessage(tool_calls=[ToolCall("tool_call_0", FunctionToolCall("echo", '{"text": "x"}'))]),
      ToolCallResponseMessage(tool_call_id="tool_call_0", name="echo", content="x"),
      AssistantMessage("x"),
      UserMessage("again"),
    ]
    model = RepeatingIdModel([{"tool_calls": [tool_call("echo", '{"text": "y"}')]}, {"content": "done"}])

    result = await make_loop(model).run(TELLER, history)
    assert result.messages[0].tool_calls[0].id != "tool_call_0"
    assert result.content == "done"


@pytest.mark.core
class TestStreaming:
  SCRIPT = [
    {"content": "Let me check.", "tool_calls": [tool_call("lookup_customer", '{"name": "Ada"}')]},
    {"tool_calls": [tool_call("escalate", '{"customer_id": "c-42"}')]},
    {"content": "The balance is 100."},
  ]

  @pytest.mark.asyncio
  async def test_stream_and_run_agree(self):
    plain = await make_loop(MockModel(list(self.SCRIPT))).run(TELLER, [UserMessage("audit Ada")])
    _, streamed = await stream_result(make_loop(MockModel(list(self.SCRIPT))), TELLER, [UserMessage("audit Ada")])

    assert streamed.messages == plain.messages
    assert streamed.agent is plain.agent
    assert streamed.context_variables == plain.context_variables
    assert streamed.turns == plain.turns

  @pytest.mark.asyncio
  async def test_stream_items(self):
    items, result = await stream_result(make_loop(MockModel(list(self.SCRIPT))), TELLER, [UserMessage("audit Ada")])

    starts = [i for i in items if isinstance(i, TurnStart)]
    ends = [i for i in items if isinstance(i, TurnEnd)]
    assert [(s.agent, s.turn) for s in starts] == [("teller", 1), ("teller", 2), ("auditor", 3)]
    assert [e.message for e in ends] == [m for m in result.messages if isinstance(m, AssistantMessage)]

    text = "".join(i.text for i in items if isinstance(i, ContentDelta))
    assert text == "Let me check.The balance is 100."
    assert any(isinstance(i, ToolCallDelta) for i in items)

  @pytest.mark.asyncio
  async def test_every_turn_is_framed(self):
    items, _ = await stream_result(make_loop(MockModel(list(self.SCRIPT))), TELLER, [UserMessage("audit Ada")])
    kinds = [type(i).__name__ for i in items if isinstance(i, (TurnStart, TurnEnd))]
    assert kinds == ["TurnStart", "TurnEnd"] * 3

  @pytest.mark.asyncio
  @pytest.mark.error_handling
  async def test_stream_error_is_raised(self):
    request = httpx.Request("POST", "https://api.example.com/v1/chat/completions")
    error = openai.RateLimitError("slow down", response=httpx.Response(429, request=request), body=None)
    loop = make_loop(ErrorMockModel(error=error))

    items = []
    with pytest.raises(RateLimitError):
      async for item in loop.run_and_stream(TELLER, [UserMessage("hi")]):
        items.append(item)
    assert not any(isinstance(i, LoopResult) for i in items)
