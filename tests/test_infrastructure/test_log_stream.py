"""
Tests for deploygate.infrastructure.log_stream
================================================

What's Being Tested:
    - Lines are captured per stream, in order
    - Subscribers see every line
    - A failing subscriber does not break the writer
"""

from deploygate.infrastructure.log_stream import LogCollection


class TestLogCollection:
    """Tests for the in-memory log group."""

    async def test_lines_per_stream(self) -> None:
        logs = LogCollection("/aws/codebuild/deploy-readme-s3")
        await logs.create_log_stream("build-1")
        await logs.put_log_events("build-1", ["one", "two"])
        await logs.put_log_events("build-2", ["other"])

        assert logs.lines("build-1") == ["one", "two"]
        assert logs.lines("build-2") == ["other"]
        assert sorted(logs.stream_names()) == ["build-1", "build-2"]
        assert logs.lines("missing") == []

    async def test_subscribers_receive_each_line(self) -> None:
        logs = LogCollection("group")
        seen: list[tuple[str, str]] = []

        async def subscriber(stream: str, line: str) -> None:
            seen.append((stream, line))

        logs.subscribe(subscriber)
        await logs.put_log_events("build-1", ["a", "b"])

        assert seen == [("build-1", "a"), ("build-1", "b")]
        assert logs.subscriber_count == 1

    async def test_failing_subscriber_is_isolated(self) -> None:
        logs = LogCollection("group")
        seen: list[str] = []

        async def broken(stream: str, line: str) -> None:
            raise RuntimeError("filter crashed")

        async def healthy(stream: str, line: str) -> None:
            seen.append(line)

        logs.subscribe(broken)
        logs.subscribe(healthy)
        await logs.put_log_events("build-1", ["still written"])

        assert logs.lines("build-1") == ["still written"]
        assert seen == ["still written"]
