"""Unit tests for vault_publish.context."""

import logging

from vault_publish.context import PipelineContext, stage_logger


class TestPipelineContext:
    def test_child_merges_and_drops_none(self):
        ctx = PipelineContext().child(run="r1").child(noteId="n1", vaultPath=None)
        assert ctx.fields == {"run": "r1", "noteId": "n1"}

    def test_parent_unchanged(self):
        parent = PipelineContext().child(run="r1")
        parent.child(noteId="n1")
        assert parent.fields == {"run": "r1"}

    def test_logger_prefixes_fields(self, caplog):
        log = PipelineContext().child(noteId="n1").logger("vault_publish.test")
        with caplog.at_level(logging.INFO, logger="vault_publish.test"):
            log.info("hello %s", "world")
        record = caplog.records[-1]
        assert record.getMessage() == "[noteId=n1] hello world"
        assert record.publish_context == {"noteId": "n1"}

    def test_empty_context_has_no_prefix(self, caplog):
        with caplog.at_level(logging.INFO, logger="vault_publish.test"):
            stage_logger("vault_publish.test", None).info("plain")
        assert caplog.records[-1].getMessage() == "plain"
