# -*- coding: utf-8 -*-
"""Tests for the MCP gateway tools."""
import pytest

from mcp_gateway.server import create_gateway
from services.shared.errors import ValidationError


async def _tool(mcp, name: str):
    tools = await mcp.get_tools()
    return tools[name].fn


@pytest.mark.asyncio
async def test_gateway_registers_tools(make_oracle, make_extractor) -> None:
    mcp = create_gateway(make_extractor(make_oracle()))
    tools = await mcp.get_tools()
    assert set(tools) == {"extract_syllabus_text", "generate_study_sessions", "export_calendar_ics"}


@pytest.mark.asyncio
async def test_extract_then_plan_then_export(make_oracle, make_extractor, sample_response) -> None:
    mcp = create_gateway(make_extractor(make_oracle([sample_response])))

    extracted = (await _tool(mcp, "extract_syllabus_text"))("CS 101 syllabus text")
    assert extracted["course_code"] == "CS 101"
    assert extracted["events"][1]["due_date"] == "2025-02-10T00:00:00+00:00"

    sessions = (await _tool(mcp, "generate_study_sessions"))(
        "2025-01-01", "2025-03-02", events=extracted["events"], course_code="CS 101",
    )
    assert len(sessions) == 25
    assert sessions[0]["start_time"] == "2025-01-01T00:00:00+00:00"
    assert sessions[9]["title"] == "Prepare for Homework 1"
    assert sessions[0]["description"] == "Regular study session for CS 101"

    document = (await _tool(mcp, "export_calendar_ics"))(
        events=extracted["events"], sessions=sessions, course_code="CS 101",
    )
    assert document.count("BEGIN:VEVENT") == 3 + 25
    assert document.endswith("END:VCALENDAR\r\n")


@pytest.mark.asyncio
async def test_generate_rejects_bad_dates(make_oracle, make_extractor) -> None:
    generate = await _tool(create_gateway(make_extractor(make_oracle())), "generate_study_sessions")
    with pytest.raises(ValidationError) as info:
        generate("next monday", "2025-03-02")
    assert info.value.errors == {"start": "invalid"}
