"""Tests for the pipeline facade joining both flows."""

import pytest

from docrelay.bridge import MemoryKeyValueStore, ResultBridge
from docrelay.config import Settings
from docrelay.errors import ExtractionFailed, InvalidParameters
from docrelay.operations.engines import SimulatedEngine
from docrelay.operations.gateway import OperationGateway
from docrelay.operations.types import Operation, Request, Tone
from docrelay.pipeline import DocumentPipeline, create_pipeline


@pytest.fixture
def pipeline(history, bridge):
    return DocumentPipeline(OperationGateway(fallback=SimulatedEngine()), history, bridge)


@pytest.fixture
def doc(tmp_path):
    path = tmp_path / "doc.txt"
    path.write_text("The quarterly numbers improved across every region.", encoding="utf-8")
    return path


class TestMainFlow:
    """Test same-process processing into history."""

    @pytest.mark.asyncio
    async def test_process_file_records_history(self, pipeline, history, doc):
        response = await pipeline.process_file(doc, Operation.SUMMARIZE, sentence_limit=2)

        assert response.source_name == "doc.txt"
        [entry] = history.entries
        assert entry.source_name == "doc.txt"
        assert entry.operation is Operation.SUMMARIZE
        assert entry.preview == response.text[:100]

    @pytest.mark.asyncio
    async def test_process_file_source_name_override(self, pipeline, history, doc):
        response = await pipeline.process_file(doc, Operation.SUMMARIZE, source_name="Board memo")
        assert response.source_name == "Board memo"
        assert history.entries[0].source_name == "Board memo"

    @pytest.mark.asyncio
    async def test_process_text_uses_default_source(self, pipeline, history):
        await pipeline.process_text(Request(text="hello", operation=Operation.REWRITE, tone=Tone.CONCISE))
        assert history.entries[0].source_name == "Text snippet"

    @pytest.mark.asyncio
    async def test_extraction_errors_propagate(self, pipeline, tmp_path):
        with pytest.raises(ExtractionFailed):
            await pipeline.process_file(tmp_path / "missing.txt", Operation.SUMMARIZE)

    @pytest.mark.asyncio
    async def test_empty_document_is_invalid(self, pipeline, history, tmp_path):
        empty = tmp_path / "empty.txt"
        empty.write_text("", encoding="utf-8")
        with pytest.raises(InvalidParameters):
            await pipeline.process_file(empty, Operation.SUMMARIZE)
        assert len(history) == 0


class TestShareFlow:
    """Test handing results over through the bridge."""

    @pytest.mark.asyncio
    async def test_share_then_collect(self, pipeline, history, bridge, doc):
        response, saved = await pipeline.share_file(doc, Operation.TRANSLATE, target_language="es")

        assert saved is True
        assert len(history) == 0
        assert bridge.peek_has_result() is True

        delivery = pipeline.collect_shared_result()

        assert delivery.response == response
        assert delivery.entry.source_name == "doc.txt"
        assert delivery.entry.operation is Operation.TRANSLATE
        assert bridge.peek_has_result() is False

    def test_collect_with_nothing_pending(self, pipeline):
        assert pipeline.collect_shared_result() is None

    @pytest.mark.asyncio
    async def test_same_result_from_both_paths_recorded_once(self, pipeline, history, clock, doc):
        await pipeline.share_file(doc, Operation.SUMMARIZE)
        await pipeline.process_file(doc, Operation.SUMMARIZE)
        clock.advance(minutes=2)

        delivery = pipeline.collect_shared_result()

        assert delivery is not None
        assert delivery.entry is None
        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_bridge_unavailable(self, history):
        bridge = ResultBridge(MemoryKeyValueStore(available=False))
        pipeline = DocumentPipeline(OperationGateway(fallback=SimulatedEngine()), history, bridge)

        response, saved = await pipeline.share(Request(text="hello", operation=Operation.SUMMARIZE))

        assert saved is False
        assert response.text


class TestCreatePipeline:
    """Test wiring from settings, across two independent pipelines."""

    @pytest.mark.asyncio
    async def test_extension_and_main_process(self, tmp_path, doc):
        settings = Settings(data_dir=tmp_path / "data", force_simulated=True)
        extension, extension_engine = create_pipeline(settings)
        main, _ = create_pipeline(settings)

        assert extension_engine is None
        _, saved = await extension.share_file(doc, Operation.SUMMARIZE)
        assert saved is True

        delivery = main.collect_shared_result()

        assert delivery.entry is not None
        assert settings.history_path.is_file()
        reopened, _ = create_pipeline(settings)
        assert [e.id for e in reopened.history.entries] == [delivery.entry.id]

    def test_real_engine_without_key_falls_back(self, tmp_path):
        pipeline, engine = create_pipeline(Settings(data_dir=tmp_path, api_key=None))
        assert engine is not None
        assert pipeline.gateway.resolve_engine().name == "simulated"

    def test_real_engine_with_key(self, tmp_path):
        pipeline, engine = create_pipeline(Settings(data_dir=tmp_path, api_key="sk-test"))
        assert pipeline.gateway.resolve_engine() is engine

    @pytest.mark.asyncio
    async def test_share_flow_never_opens_history(self, tmp_path, doc):
        settings = Settings(data_dir=tmp_path / "data", force_simulated=True)
        settings.data_dir.mkdir()
        settings.history_path.write_text("{not json", encoding="utf-8")
        extension, _ = create_pipeline(settings)

        _, saved = await extension.share_file(doc, Operation.SUMMARIZE)

        assert saved is True
        assert settings.history_path.read_text(encoding="utf-8") == "{not json"

    def test_history_or_factory_required(self, bridge):
        with pytest.raises(ValueError):
            DocumentPipeline(OperationGateway(fallback=SimulatedEngine()), None, bridge)

    @pytest.mark.asyncio
    async def test_history_factory_called_once(self, history, bridge, doc):
        opened = []

        def open_history():
            opened.append(True)
            return history

        pipeline = DocumentPipeline(
            OperationGateway(fallback=SimulatedEngine()), None, bridge, history_factory=open_history
        )
        await pipeline.process_file(doc, Operation.SUMMARIZE)
        await pipeline.process_file(doc, Operation.REWRITE)

        assert opened == [True]
        assert len(history) == 2
