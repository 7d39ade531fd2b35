"""Tests for CLI output formatting."""

import io
import json

from hive.cli_output import (
    CLIOutput,
    OutputFormat,
    _format_number,
    format_pool_plain,
    format_pools_plain,
)
from hive.routing.router import ExecutionPlan, RouteResult
from hive.routing.types import YIELD_STOP, Intent, RouterContext, RouterDecision
from hive.yields.types import YieldPool, YieldResult


def _route_result(**decision_fields) -> RouteResult:
    decision = {
        "agent": "lending",
        "mode": "explore",
        "ui": "cards",
        "tool_plan": [{"tool": "solana_lending_yields", "args": {"tokenSymbol": "USDC"}}],
        "stop_condition": YIELD_STOP,
        "layout": ["tool"],
    }
    decision.update(decision_fields)
    return RouteResult(
        agent_name="Lending Agent",
        decision=RouterDecision(**decision),
        intent=Intent(goal="explore", domain="lending", confidence=0.9),
        context=RouterContext(),
    )


def _plan() -> ExecutionPlan:
    return ExecutionPlan(
        tools=["solana_lending_yields"],
        plan_keys=["solana_lending_yields"],
        forced_tool="solana_lending_yields",
        max_rounds=1,
    )


USDC_POOL = YieldPool(
    symbol="USDC",
    project="kamino-lend",
    apy=6.123,
    apy_base=5.0,
    apy_reward=1.123,
    tvl_usd=2_500_000,
    token_mint_address="mint-usdc",
)


class TestCLIOutput:
    """Tests for CLIOutput class."""

    def test_route_text_output(self):
        """Test routed turn in text mode."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.TEXT, stream=stream)

        output.route(_route_result(), _plan())

        content = stream.getvalue()
        assert "Agent: Lending Agent" in content
        assert "Mode: explore" in content
        assert "Tools: solana_lending_yields" in content
        assert "Max rounds: 1" in content
        assert "Layout: tool" in content
        assert "Clarify" not in content

    def test_route_text_shows_clarification(self):
        """Test that clarifying questions are printed."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.TEXT, stream=stream)
        result = _route_result(agent="none", ui="text", tool_plan=[], layout=["text"])
        result.agent_name = None
        result.intent = Intent(
            goal="explore",
            domain="none",
            confidence=0.2,
            needs_clarification=True,
            clarifying_question="Which token?",
        )

        output.route(result, ExecutionPlan(tools=[]))

        content = stream.getvalue()
        assert "Agent: none" in content
        assert "Clarify: Which token?" in content
        assert "Tools:" not in content

    def test_route_json_output(self):
        """Test routed turn in JSON mode."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.JSON, stream=stream)

        output.route(_route_result(), _plan())

        data = json.loads(stream.getvalue())
        assert data["agent"] == "Lending Agent"
        assert data["decision"]["stopCondition"] == YIELD_STOP
        assert data["decision"]["toolPlan"][0]["args"] == {"tokenSymbol": "USDC"}
        assert data["plan"] == {
            "tools": ["solana_lending_yields"],
            "forcedTool": "solana_lending_yields",
            "maxRounds": 1,
            "missing": [],
        }
        assert data["annotation"] == {"layout": ["tool"]}

    def test_yields_text_output(self):
        """Test yield results in text mode."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.TEXT, stream=stream)

        output.yields(YieldResult.ok([USDC_POOL], "Found the 1 top Solana lending pools."))

        content = stream.getvalue()
        assert "Found the 1 top" in content
        assert "1. USDC on kamino-lend" in content
        assert "APY: 6.12%" in content

    def test_yields_json_output(self):
        """Test yield results in JSON mode."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.JSON, stream=stream)

        output.yields(YieldResult.unavailable("Sources are down."))

        data = json.loads(stream.getvalue())
        assert data == {"status": "unavailable", "message": "Sources are down.", "body": None}

    def test_tool_result_text_output(self):
        """Test market tool results in text mode."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.TEXT, stream=stream)

        output.tool_result(
            {
                "message": "Found 2 trending tokens.",
                "body": {"tokens": [{"symbol": "BONK", "price": 0.5}, {"name": "Dogwifhat"}]},
            }
        )

        content = stream.getvalue()
        assert "Found 2 trending tokens." in content
        assert "1. BONK  $0.50" in content
        assert "2. Dogwifhat" in content

    def test_tool_result_json_output(self):
        """Test market tool results in JSON mode."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.JSON, stream=stream)
        payload = {"message": "Error getting top traders: down", "body": {"traders": []}}

        output.tool_result(payload)

        assert json.loads(stream.getvalue()) == payload

    def test_status_suppressed_in_json_mode(self):
        """Test that status messages are suppressed in JSON mode."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.JSON, stream=stream)

        output.status("Loading...")
        output.info("Some info")

        assert stream.getvalue() == ""

    def test_status_shown_in_text_mode(self):
        """Test status messages appear in text mode."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.TEXT, stream=stream)

        output.status("Loading...")
        output.info("Information")

        assert "Loading" in stream.getvalue()
        assert "Information" in stream.getvalue()

    def test_errors_go_to_stderr(self, capsys):
        """Test warnings and errors are written to stderr."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.JSON, stream=stream)

        output.error("boom")
        output.warning("careful")

        captured = capsys.readouterr()
        assert json.loads(captured.err.splitlines()[0]) == {"error": "boom"}
        assert json.loads(captured.err.splitlines()[1]) == {"warning": "careful"}
        assert stream.getvalue() == ""

    def test_debug_only_in_verbose_mode(self, capsys):
        """Test debug messages only appear in verbose mode."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.TEXT, verbose=False, stream=stream)
        output.debug("Debug info")
        captured = capsys.readouterr()
        assert "Debug" not in captured.err

        output = CLIOutput(format=OutputFormat.TEXT, verbose=True, stream=stream)
        output.debug("Debug info")
        captured = capsys.readouterr()
        assert "Debug" in captured.err


class TestFormatPoolPlain:
    """Tests for pool formatting."""

    def test_full_pool(self):
        """Test formatting a pool with rewards and TVL."""
        result = format_pool_plain(USDC_POOL)

        assert "USDC on kamino-lend" in result
        assert "base 5.00% + reward 1.12%" in result
        assert "TVL: $2.50M" in result
        assert "Mint: mint-usdc" in result

    def test_minimal_pool(self):
        """Test formatting a pool without optional fields."""
        result = format_pool_plain(YieldPool(symbol="MSOL", project="marinade", apy=7.0))

        assert "APY: 7.00%" in result
        assert "TVL" not in result
        assert "reward" not in result

    def test_empty_list(self):
        """Test formatting an empty pool list."""
        assert format_pools_plain([]) == "No pools found."

    def test_numbering(self):
        """Test pools are numbered in order."""
        second = YieldPool(symbol="USDT", project="jupiter-lend", apy=4.0)
        result = format_pools_plain([USDC_POOL, second])

        assert "1. USDC" in result
        assert "2. USDT" in result


class TestFormatNumber:
    """Tests for number formatting."""

    def test_billions(self):
        assert _format_number(1_500_000_000) == "1.50B"

    def test_millions(self):
        assert _format_number(2_500_000) == "2.50M"

    def test_thousands(self):
        assert _format_number(1_500) == "1.50K"

    def test_small_numbers(self):
        assert _format_number(123.456) == "123.46"

    def test_invalid_value(self):
        assert _format_number("not a number") == "not a number"
