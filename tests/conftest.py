"""Pytest configuration and shared fixtures."""

import sys
import textwrap

import httpx
import pytest

from chronos_relay.ingestion.acquire import ImageAcquirer
from chronos_relay.ingestion.attachments import Attachment
from chronos_relay.ingestion.pipeline import PipelineInvoker

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def results_block(pairs, before="loading models...\n", after="done\n"):
    """Pipeline stdout with a results block surrounded by diagnostics."""
    lines = [before.rstrip("\n"), "=" * 40, "DISCORD_RESULTS_START"]
    for i, (question, answer) in enumerate(pairs, start=1):
        lines.append(f"QUESTION_{i}:::{question}")
        lines.append(f"ANSWER_{i}:::{answer}")
        lines.append("---")
    lines.append("DISCORD_RESULTS_END")
    lines.append("=" * 40)
    lines.append(after.rstrip("\n"))
    return "\n".join(lines) + "\n"


@pytest.fixture
def make_script(tmp_path):
    """Write a fake pipeline script that prints fixed output and exits."""
    counter = {"n": 0}

    def _make(stdout: str = "", stderr: str = "", exit_code: int = 0, sleep: float = 0.0) -> str:
        counter["n"] += 1
        path = tmp_path / f"fake_pipeline_{counter['n']}.py"
        path.write_text(textwrap.dedent(f"""\
            import sys, time
            sys.stdout.write({stdout!r})
            sys.stdout.flush()
            sys.stderr.write({stderr!r})
            sys.stderr.flush()
            time.sleep({sleep!r})
            sys.exit({exit_code!r})
        """), encoding="utf-8")
        return str(path)

    return _make


@pytest.fixture
def make_invoker(make_script):
    def _make(stdout: str = "", stderr: str = "", exit_code: int = 0, **kwargs) -> PipelineInvoker:
        script = make_script(stdout=stdout, stderr=stderr, exit_code=exit_code)
        return PipelineInvoker(python=sys.executable, script=script, **kwargs)

    return _make


@pytest.fixture
def work_dir(tmp_path):
    return tmp_path / "temp_images"


@pytest.fixture
def make_acquirer(work_dir):
    """ImageAcquirer backed by an httpx.MockTransport.

    ``routes`` maps URL → (status, body). Unknown URLs get 404.
    """
    def _make(routes=None) -> ImageAcquirer:
        routes = routes or {}

        def handler(request: httpx.Request) -> httpx.Response:
            status, body = routes.get(str(request.url), (404, b"not found"))
            return httpx.Response(status, content=body)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ImageAcquirer(work_dir=str(work_dir), client=client)

    return _make


@pytest.fixture
def image_attachment():
    def _make(url="https://cdn.example.com/a/photo.png", **kwargs) -> Attachment:
        kwargs.setdefault("id", "att1")
        kwargs.setdefault("content_type", "image/png")
        return Attachment(url=url, **kwargs)

    return _make
