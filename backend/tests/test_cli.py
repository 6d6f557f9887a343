"""Tests for the reviewctl command line."""

import io
import json

import pytest
from click.testing import CliRunner
from httpx import AsyncClient, ASGITransport
from rich.console import Console

import reviewctl
from dashboard.client import ReviewApiClient
from review.notify import ConsoleNotifier, NotificationAction
from review.retry import NO_RETRY
from fakes import KEYWORD_OUTPUT


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def cli_env(monkeypatch):
    monkeypatch.setenv("REVIEW_POLL_INTERVAL", "0")
    monkeypatch.setenv("REVIEW_REVIEWER", "cli-tester")
    monkeypatch.setenv("REVIEW_RECHECK_BEFORE_SUBMIT", "true")
    monkeypatch.setenv("REVIEW_PIPELINE_STEPS", "seo_keywords,marketing_brief,article_generation")
    monkeypatch.setenv("DEBUG", "false")


@pytest.fixture
def wired(backend, monkeypatch):
    """Point the CLI at the in-process backend."""

    def build_client(config):
        http = AsyncClient(transport=ASGITransport(app=backend.app), base_url="http://test")
        return ReviewApiClient(config, http=http, retry=NO_RETRY)

    monkeypatch.setattr(reviewctl, "build_client", build_client)
    return backend


class TestBasics:
    """Tests for help and version."""

    def test_help(self, runner):
        result = runner.invoke(reviewctl.cli, ["--help"])
        assert result.exit_code == 0
        assert "decide" in result.output
        assert "keywords" in result.output

    def test_version(self, runner):
        result = runner.invoke(reviewctl.cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestPendingAndShow:

    def test_pending_empty(self, runner, wired):
        result = runner.invoke(reviewctl.cli, ["pending"])
        assert result.exit_code == 0
        assert "No approvals waiting" in result.output

    def test_pending_lists(self, runner, wired):
        wired.add_approval(id="apr-7")
        result = runner.invoke(reviewctl.cli, ["pending"])
        assert result.exit_code == 0
        assert "apr-7" in result.output

    def test_show(self, runner, wired):
        wired.add_approval()
        result = runner.invoke(reviewctl.cli, ["show", "apr-1"])
        assert result.exit_code == 0
        assert "apr-1" in result.output
        assert "Building Agents" in result.output

    def test_show_keywords(self, runner, wired):
        wired.add_approval(pipeline_step="seo_keywords", output_data=KEYWORD_OUTPUT)
        result = runner.invoke(reviewctl.cli, ["show", "apr-1"])
        assert result.exit_code == 0
        assert "MAIN" in result.output

    def test_show_missing(self, runner, wired):
        result = runner.invoke(reviewctl.cli, ["show", "nope"])
        assert result.exit_code == 1
        assert "Failed to load approval" in result.output


class TestDecide:

    def test_modify_with_comment_reruns(self, runner, wired):
        wired.add_approval()
        result = runner.invoke(reviewctl.cli, ["decide", "apr-1", "modify", "-c", "shorter intro"])

        assert result.exit_code == 0, result.output
        assert wired.decisions == [
            ("apr-1", {"decision": "rerun", "comment": "shorter intro", "reviewed_by": "cli-tester"})
        ]

    def test_modify_with_field_edit(self, runner, wired):
        wired.add_approval()
        result = runner.invoke(reviewctl.cli, ["decide", "apr-1", "modify", "--set", "title=New title"])

        assert result.exit_code == 0, result.output
        payload = wired.decisions[0][1]
        assert payload["decision"] == "modify"
        assert payload["modified_output"]["title"] == "New title"

    def test_modify_with_invalid_json_file(self, runner, wired, tmp_path):
        wired.add_approval()
        output = tmp_path / "out.json"
        output.write_text("{not json")

        result = runner.invoke(reviewctl.cli, ["decide", "apr-1", "modify", "--output", str(output)])

        assert result.exit_code == 1
        assert "Invalid JSON" in result.output
        assert wired.decisions == []

    def test_modify_with_json_file(self, runner, wired, tmp_path):
        wired.add_approval()
        output = tmp_path / "out.json"
        output.write_text(json.dumps({"title": "From file"}))

        result = runner.invoke(reviewctl.cli, ["decide", "apr-1", "modify", "--output", str(output)])

        assert result.exit_code == 0, result.output
        assert wired.decisions[0][1]["modified_output"] == {"title": "From file"}

    def test_already_decided(self, runner, wired):
        wired.add_approval(status="approved")
        result = runner.invoke(reviewctl.cli, ["decide", "apr-1", "reject"])

        assert result.exit_code == 1
        assert "Already Decided" in result.output
        assert wired.decisions == []

    def test_reject_and_retry(self, runner, wired):
        wired.add_approval()
        wired.script_job("retry-apr-1", {"status": "completed", "progress": 100})

        result = runner.invoke(reviewctl.cli, ["decide", "apr-1", "reject", "-c", "off topic", "--yes"])

        assert result.exit_code == 0, result.output
        assert wired.retried == ["apr-1"]
        assert "Processing complete" in result.output

    def test_reject_without_retry(self, runner, wired):
        wired.add_approval()
        result = runner.invoke(reviewctl.cli, ["decide", "apr-1", "reject"], input="n\n")

        assert result.exit_code == 0, result.output
        assert wired.retried == []

    def test_rerun_is_not_a_choice(self, runner, wired):
        result = runner.invoke(reviewctl.cli, ["decide", "apr-1", "rerun"])
        assert result.exit_code == 2

    def test_edits_need_modify(self, runner, wired):
        wired.add_approval()
        result = runner.invoke(reviewctl.cli, ["decide", "apr-1", "approve", "--set", "title=x"])

        assert result.exit_code == 2
        assert "only apply to a modify decision" in result.output
        assert wired.decisions == []

    @pytest.mark.parametrize("decision", ["approve", "reject", "modify"])
    def test_keyword_approval_is_sent_to_keywords(self, runner, wired, decision):
        wired.add_approval(pipeline_step="seo_keywords", output_data=KEYWORD_OUTPUT)
        result = runner.invoke(reviewctl.cli, ["decide", "apr-1", decision])

        assert result.exit_code == 1
        assert "reviewctl keywords apr-1" in result.output
        assert wired.decisions == []

    def test_failed_submission_is_retried(self, runner, wired):
        wired.add_approval()
        wired.fail_once_status["/v1/approvals/apr-1/decide"] = 500

        result = runner.invoke(reviewctl.cli, ["decide", "apr-1", "approve", "--yes"])

        assert result.exit_code == 0, result.output
        assert "Decision failed" in result.output
        assert "Approval approved" in result.output
        assert [d[1]["decision"] for d in wired.decisions] == ["approve"]

    def test_failed_submission_retry_declined(self, runner, wired):
        wired.add_approval()
        wired.fail_once_status["/v1/approvals/apr-1/decide"] = 500

        result = runner.invoke(reviewctl.cli, ["decide", "apr-1", "approve"], input="n\n")

        assert result.exit_code == 1
        assert "Retry now?" in result.output
        assert wired.decisions == []


class TestKeywords:

    def test_promote_and_submit(self, runner, wired):
        wired.add_approval(pipeline_step="seo_keywords", output_data=KEYWORD_OUTPUT)

        result = runner.invoke(reviewctl.cli, [
            "keywords", "apr-1",
            "--promote", "secondary:agent orchestration",
            "--deselect-all", "lsi",
        ])

        assert result.exit_code == 0, result.output
        payload = wired.decisions[0][1]
        assert payload["main_keyword"] == "agent orchestration"
        assert payload["selected_keywords"]["lsi"] == []
        assert "ai agents" in payload["selected_keywords"]["primary"]

    def test_dry_run(self, runner, wired):
        wired.add_approval(pipeline_step="seo_keywords", output_data=KEYWORD_OUTPUT)
        result = runner.invoke(reviewctl.cli, ["keywords", "apr-1", "--dry-run"])

        assert result.exit_code == 0
        assert wired.decisions == []

    def test_not_a_keyword_step(self, runner, wired):
        wired.add_approval()
        result = runner.invoke(reviewctl.cli, ["keywords", "apr-1", "--main", "x"])
        assert result.exit_code == 1

    def test_bad_category(self, runner, wired):
        result = runner.invoke(reviewctl.cli, ["keywords", "apr-1", "--toggle", "tertiary:x"])
        assert result.exit_code != 0
        assert "unknown category" in result.output


class TestJobs:

    def test_cancel_declined(self, runner, wired):
        wired.add_approval()
        result = runner.invoke(reviewctl.cli, ["cancel", "apr-1"], input="n\n")

        assert result.exit_code == 1
        assert wired.cancelled == []

    def test_cancel_confirmed(self, runner, wired):
        wired.add_approval()
        result = runner.invoke(reviewctl.cli, ["cancel", "apr-1", "--yes"])

        assert result.exit_code == 0, result.output
        assert wired.cancelled == ["job-1"]
        assert "Job Cancelled" in result.output

    def test_retry_pending_fails(self, runner, wired):
        wired.add_approval()
        result = runner.invoke(reviewctl.cli, ["retry", "apr-1"])
        assert result.exit_code == 1

    def test_retry_without_watch(self, runner, wired):
        wired.add_approval(status="rejected")
        result = runner.invoke(reviewctl.cli, ["retry", "apr-1", "--no-watch"])

        assert result.exit_code == 0, result.output
        assert wired.retried == ["apr-1"]

    def test_watch_completed(self, runner, wired):
        wired.script_job(
            "job-9",
            {"status": "processing", "progress": 50},
            {"status": "completed", "progress": 100},
        )
        result = runner.invoke(reviewctl.cli, ["watch", "job-9"])

        assert result.exit_code == 0, result.output
        assert "completed" in result.output

    def test_watch_failed(self, runner, wired):
        wired.script_job("job-9", {"status": "failed", "progress": 20, "error": "model timeout"})
        result = runner.invoke(reviewctl.cli, ["watch", "job-9"])

        assert result.exit_code == 1
        assert "model timeout" in result.output


class TestParsing:

    def test_field_edit_json_value(self):
        assert reviewctl.parse_field_edit("tags=[\"a\"]") == ("tags", ["a"])

    def test_field_edit_plain_value(self):
        assert reviewctl.parse_field_edit("title=Hello") == ("title", "Hello")

    def test_category_keyword(self):
        category, keyword = reviewctl.parse_category_keyword("long_tail:how to x")
        assert category.value == "long_tail"
        assert keyword == "how to x"


class TestConsoleNotifier:

    def test_action_is_handed_over_once(self):
        async def retry():
            return "job-2"

        notifier = ConsoleNotifier(Console(file=io.StringIO()))
        notifier.error("Decision failed", "backend hiccup", action=NotificationAction("Retry", retry))

        action = notifier.take_action()
        assert action.label == "Retry"
        assert notifier.take_action() is None

    def test_success_offers_nothing(self):
        notifier = ConsoleNotifier(Console(file=io.StringIO()))
        notifier.success("Approval approved")
        assert notifier.take_action() is None
