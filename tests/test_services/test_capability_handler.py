"""Tests for CapabilityHandler."""

import pytest
from acp import RequestError
from acp.schema import EnvVariable, PermissionOption, SessionNotification, ToolCallUpdate

from acpvisor.errors import SessionError
from acpvisor.infra.rpc.protocol import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND
from acpvisor.models.events import UiEventType
from acpvisor.services.capability_handler import (
    CapabilityHandler,
    choose_permission_option,
    select_lines,
)


@pytest.fixture
def events():
    return []


@pytest.fixture
def handler(tmp_path, events):
    (tmp_path / "src").mkdir()
    h = CapabilityHandler(tmp_path, emit=events.append)
    yield h
    h.close()


async def _expect_request_error(coro, code):
    with pytest.raises(RequestError) as exc_info:
        await coro
    assert exc_info.value.code == code
    return exc_info.value


def _option(option_id, kind):
    return PermissionOption(option_id=option_id, name=option_id, kind=kind)


class TestPermissionPolicy:
    @pytest.mark.parametrize("options,expected", [
        ([("r", "reject_once"), ("a", "allow_once")], "a"),
        ([("aa", "allow_always"), ("r", "reject_once")], "aa"),
        ([("aa", "allow_always"), ("a1", "allow_once")], "a1"),
        ([("r1", "reject_once"), ("r2", "reject_always")], "r1"),
        ([], None),
    ])
    def test_choose(self, options, expected):
        assert choose_permission_option([_option(*o) for o in options]) == expected

    @pytest.mark.asyncio
    async def test_request_selected(self, handler):
        resp = await handler.request_permission(
            options=[_option("ok", "allow_once")],
            session_id="s",
            tool_call=ToolCallUpdate(tool_call_id="t1", title="Edit file"),
        )
        assert resp.outcome.outcome == "selected"
        assert resp.outcome.option_id == "ok"

    @pytest.mark.asyncio
    async def test_request_cancelled_without_options(self, handler):
        resp = await handler.request_permission(
            options=[], session_id="s", tool_call=ToolCallUpdate(tool_call_id="t1")
        )
        assert resp.outcome.outcome == "cancelled"

    def test_resolve_permission_has_nothing_pending(self, handler):
        with pytest.raises(SessionError, match="no pending permission request: req-1"):
            handler.resolve_permission("req-1", "ok")


class TestSelectLines:
    def test_window(self):
        assert select_lines("l1\nl2\nl3\nl4\nl5\n", 2, 2) == "l2\nl3"

    def test_line_only(self):
        assert select_lines("l1\nl2\nl3", 2, None) == "l2\nl3"

    def test_limit_only(self):
        assert select_lines("l1\nl2\nl3", None, 1) == "l1"

    def test_crlf_stripped(self):
        assert select_lines("a\r\nb\r\n", 1, 2) == "a\nb"

    def test_lone_cr_does_not_end_a_line(self):
        assert select_lines("one\rstill one\ntwo\n", 1, 1) == "one\rstill one"

    def test_past_end(self):
        assert select_lines("a\nb", 5, 2) == ""

    def test_line_zero_treated_as_first(self):
        assert select_lines("a\nb", 0, 1) == "a"


class TestFiles:
    @pytest.mark.asyncio
    async def test_write_then_read(self, handler, tmp_path):
        await handler.write_text_file(content="hello", path="notes.txt", session_id="s")
        assert (tmp_path / "notes.txt").read_bytes() == b"hello"
        resp = await handler.read_text_file(path="notes.txt", session_id="s")
        assert resp.content == "hello"

    @pytest.mark.asyncio
    async def test_write_overwrites(self, handler, tmp_path):
        (tmp_path / "src" / "a.txt").write_text("old content")
        await handler.write_text_file(
            content="new", path=str(tmp_path / "src" / "a.txt"), session_id="s"
        )
        assert (tmp_path / "src" / "a.txt").read_text() == "new"

    @pytest.mark.asyncio
    async def test_mixed_line_endings_round_trip(self, handler, tmp_path):
        await handler.write_text_file(content="a\r\nb\rc", path="mixed.txt", session_id="s")
        assert (tmp_path / "mixed.txt").read_bytes() == b"a\r\nb\rc"
        resp = await handler.read_text_file(path="mixed.txt", session_id="s")
        assert resp.content == "a\r\nb\rc"

    @pytest.mark.asyncio
    async def test_read_window(self, handler, tmp_path):
        (tmp_path / "lines.txt").write_text("l1\nl2\nl3\nl4\nl5\n")
        resp = await handler.read_text_file(path="lines.txt", session_id="s", line=2, limit=2)
        assert resp.content == "l2\nl3"

    @pytest.mark.asyncio
    async def test_read_window_counts_only_newlines(self, handler, tmp_path):
        (tmp_path / "cr.txt").write_bytes(b"one\rstill one\ntwo\n")
        resp = await handler.read_text_file(path="cr.txt", session_id="s", line=2, limit=1)
        assert resp.content == "two"

    @pytest.mark.asyncio
    async def test_read_without_window_is_verbatim(self, handler, tmp_path):
        (tmp_path / "crlf.txt").write_bytes(b"a\r\nb\r\n")
        resp = await handler.read_text_file(path="crlf.txt", session_id="s")
        assert resp.content == "a\r\nb\r\n"

    @pytest.mark.asyncio
    async def test_read_missing_is_invalid_params(self, handler):
        await _expect_request_error(
            handler.read_text_file(path="missing.txt", session_id="s"), INVALID_PARAMS
        )

    @pytest.mark.asyncio
    async def test_read_directory_is_internal_error(self, handler):
        await _expect_request_error(
            handler.read_text_file(path="src", session_id="s"), INTERNAL_ERROR
        )

    @pytest.mark.asyncio
    async def test_read_invalid_utf8_is_internal_error(self, handler, tmp_path):
        (tmp_path / "bin.dat").write_bytes(b"\xff\xfe")
        await _expect_request_error(
            handler.read_text_file(path="bin.dat", session_id="s"), INTERNAL_ERROR
        )

    @pytest.mark.asyncio
    async def test_read_traversal_rejected(self, handler):
        err = await _expect_request_error(
            handler.read_text_file(path="../etc/passwd", session_id="s"), INVALID_PARAMS
        )
        assert "parent paths are not allowed" in str(err.data)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["a\x00b", "src/\x00"])
    async def test_nul_byte_path_is_invalid_params(self, handler, path):
        await _expect_request_error(
            handler.read_text_file(path=path, session_id="s"), INVALID_PARAMS
        )
        await _expect_request_error(
            handler.write_text_file(content="x", path=path, session_id="s"), INVALID_PARAMS
        )

    @pytest.mark.asyncio
    async def test_write_outside_root_rejected(self, handler, tmp_path_factory):
        outside = tmp_path_factory.mktemp("elsewhere")
        err = await _expect_request_error(
            handler.write_text_file(content="x", path=str(outside / "x.txt"), session_id="s"),
            INVALID_PARAMS,
        )
        assert "outside project root" in str(err.data)
        assert not (outside / "x.txt").exists()

    @pytest.mark.asyncio
    async def test_write_missing_parent_rejected(self, handler, tmp_path):
        await _expect_request_error(
            handler.write_text_file(content="x", path="new/dir/x.txt", session_id="s"),
            INVALID_PARAMS,
        )
        assert not (tmp_path / "new").exists()

    @pytest.mark.asyncio
    async def test_negative_line_rejected(self, handler, tmp_path):
        (tmp_path / "a.txt").write_text("a")
        await _expect_request_error(
            handler.read_text_file(path="a.txt", session_id="s", line=-1), INVALID_PARAMS
        )


class TestTerminals:
    async def _create(self, handler, command, *args, **extra):
        resp = await handler.create_terminal(
            command=command, session_id="s", args=list(args), **extra
        )
        return resp.terminal_id

    async def _output(self, handler, tid):
        return await handler.terminal_output(session_id="s", terminal_id=tid)

    async def _wait(self, handler, tid):
        return await handler.wait_for_terminal_exit(session_id="s", terminal_id=tid)

    @pytest.mark.asyncio
    async def test_run_to_completion(self, handler):
        tid = await self._create(handler, "echo", "hi")
        assert tid.startswith("term-")
        status = await self._wait(handler, tid)
        assert (status.exit_code, status.signal) == (0, None)
        output = await self._output(handler, tid)
        assert output.output == "hi\n"
        assert output.truncated is False
        assert (output.exit_status.exit_code, output.exit_status.signal) == (0, None)

    @pytest.mark.asyncio
    async def test_output_before_exit_has_no_status(self, handler):
        tid = await self._create(handler, "sleep", "10")
        output = await self._output(handler, tid)
        assert output.exit_status is None
        await handler.kill_terminal(session_id="s", terminal_id=tid)
        await self._wait(handler, tid)

    @pytest.mark.asyncio
    async def test_kill_then_release(self, handler):
        tid = await self._create(handler, "sleep", "10")
        await handler.kill_terminal(session_id="s", terminal_id=tid)
        status = await self._wait(handler, tid)
        assert (status.exit_code, status.signal) == (None, "9")
        # Killing an exited terminal is fine
        await handler.kill_terminal(session_id="s", terminal_id=tid)
        await handler.release_terminal(session_id="s", terminal_id=tid)
        err = await _expect_request_error(self._output(handler, tid), INVALID_PARAMS)
        assert "terminal not found" in str(err.data)
        # Releasing twice is not an error
        await handler.release_terminal(session_id="s", terminal_id=tid)

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, handler):
        tid = await self._create(handler, "sh", "-c", "exit 3")
        status = await self._wait(handler, tid)
        assert status.exit_code == 3

    @pytest.mark.asyncio
    async def test_output_byte_limit(self, handler):
        tid = await self._create(handler, "sh", "-c", "printf 0123456789", output_byte_limit=4)
        await self._wait(handler, tid)
        output = await self._output(handler, tid)
        assert output.output == "6789"
        assert output.truncated is True

    @pytest.mark.asyncio
    async def test_env_and_cwd(self, handler, tmp_path):
        tid = await self._create(
            handler, "sh", "-c", 'printf "%s:" "$FOO"; pwd',
            env=[EnvVariable(name="FOO", value="bar")], cwd="src",
        )
        await self._wait(handler, tid)
        output = await self._output(handler, tid)
        assert output.output == f"bar:{(tmp_path / 'src').resolve()}\n"

    @pytest.mark.asyncio
    async def test_default_cwd_is_root(self, handler):
        tid = await self._create(handler, "pwd")
        await self._wait(handler, tid)
        output = await self._output(handler, tid)
        assert output.output == f"{handler.root_dir}\n"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cwd", ["/", "sr\x00c"])
    async def test_bad_cwd_rejected(self, handler, cwd):
        await _expect_request_error(
            handler.create_terminal(command="pwd", session_id="s", cwd=cwd), INVALID_PARAMS
        )
        assert handler.terminals.discard_all() == 0

    @pytest.mark.asyncio
    async def test_spawn_failure_is_internal_error(self, handler):
        await _expect_request_error(
            handler.create_terminal(command="no-such-command-acpvisor", session_id="s"),
            INTERNAL_ERROR,
        )

    @pytest.mark.asyncio
    async def test_unknown_terminal(self, handler):
        for call in (
            handler.terminal_output,
            handler.wait_for_terminal_exit,
            handler.kill_terminal,
        ):
            await _expect_request_error(
                call(session_id="s", terminal_id="term-missing"), INVALID_PARAMS
            )

    @pytest.mark.asyncio
    async def test_close_kills_terminals(self, handler):
        tid = await self._create(handler, "sleep", "10")
        entry = handler.terminals.get(tid)
        handler.close()
        assert handler.terminals.get(tid) is None
        assert await entry.process.wait() < 0


class TestExtensions:
    @pytest.mark.asyncio
    async def test_extension_method_not_found(self, handler):
        err = await _expect_request_error(
            handler.ext_method("vendor/thing", {}), METHOD_NOT_FOUND
        )
        assert "unsupported ext method _vendor/thing" in str(err.data)

    @pytest.mark.asyncio
    async def test_extension_notification_ignored(self, handler, events):
        await handler.ext_notification("vendor/notice", {"x": 1})
        assert events == []


class TestSessionUpdates:
    async def _update(self, handler, update):
        notification = SessionNotification.model_validate({"sessionId": "s1", "update": update})
        await handler.session_update(
            session_id=notification.session_id, update=notification.update
        )

    @pytest.mark.asyncio
    async def test_message_chunk(self, handler, events):
        await self._update(handler, {
            "sessionUpdate": "agent_message_chunk",
            "content": {"type": "text", "text": "Hello"},
        })
        assert [(e.type, e.session_id, e.content) for e in events] == [
            (UiEventType.CHAT_MESSAGE, "s1", "Hello")
        ]

    @pytest.mark.asyncio
    async def test_resource_link_chunk_shows_uri(self, handler, events):
        await self._update(handler, {
            "sessionUpdate": "agent_message_chunk",
            "content": {"type": "resource_link", "uri": "file:///a.py", "name": "a.py"},
        })
        assert events[0].content == "file:///a.py"

    @pytest.mark.asyncio
    async def test_image_chunk_ignored(self, handler, events):
        await self._update(handler, {
            "sessionUpdate": "agent_message_chunk",
            "content": {"type": "image", "data": "aGk=", "mimeType": "image/png"},
        })
        assert events == []

    @pytest.mark.asyncio
    async def test_tool_call(self, handler, events):
        await self._update(handler, {
            "sessionUpdate": "tool_call", "toolCallId": "t1", "title": "Run tests",
        })
        await self._update(handler, {
            "sessionUpdate": "tool_call", "toolCallId": "t2", "title": "Build",
            "status": "in_progress",
        })
        assert [e.content for e in events] == ["Run tests (pending)", "Build (in_progress)"]
        assert all(e.type == UiEventType.STATUS_UPDATE for e in events)

    @pytest.mark.asyncio
    async def test_tool_call_update(self, handler, events):
        await self._update(handler, {
            "sessionUpdate": "tool_call_update", "toolCallId": "t1", "status": "completed",
        })
        await self._update(handler, {"sessionUpdate": "tool_call_update", "toolCallId": "t1"})
        assert [e.content for e in events] == ["Tool update: completed", "Tool update: unchanged"]

    @pytest.mark.asyncio
    async def test_plan(self, handler, events):
        await self._update(handler, {
            "sessionUpdate": "plan",
            "entries": [
                {"content": step, "priority": "medium", "status": "pending"}
                for step in ("a", "b", "c")
            ],
        })
        assert events[0].content == "Plan received: 3 steps"

    @pytest.mark.asyncio
    async def test_other_updates_ignored(self, handler, events):
        await self._update(handler, {
            "sessionUpdate": "agent_thought_chunk",
            "content": {"type": "text", "text": "hmm"},
        })
        assert events == []
