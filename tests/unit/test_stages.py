from datetime import date
from pathlib import Path
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from ingestion.cache import MARKER_NAME
from core.database import create_engine_from_settings
from ingestion.stages import ExtractStage, FetchStage, ImportStage
from ingestion.stages.extract import extracted_dir, parse_run_date
from ingestion.stages.importer import find_csv_files
from ingestion.transport import HttpTransport
from schemas.results import SourceOutcome, StageName
from tests.fakes import FakeConnection, FakeEngine

RUN_DATE = date(2024, 5, 17)


def download_dir(settings) -> Path:
    return Path(settings.DATA_DIR) / RUN_DATE.isoformat()


class TestFetchStage:
    """Download stage against a mocked registry"""

    @pytest.mark.asyncio
    async def test_cached_artifacts_skip_network(self, settings, sources, tmp_path):
        transport = AsyncMock(spec=HttpTransport)
        stage = FetchStage(settings, transport=transport, run_date=RUN_DATE)
        stage.download_dir.mkdir(parents=True)
        for source in sources:
            (stage.download_dir / source.artifact_filename).write_bytes(b"x" * settings.CACHE_THRESHOLD_BYTES)

        result = await stage.run(sources)

        transport.download.assert_not_called()
        assert result.ok
        assert result.total == 3
        assert set(result.outcomes.values()) == {SourceOutcome.CACHED}

    @pytest.mark.asyncio
    async def test_downloads_with_request_params(self, settings, sources):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=b"z" * 500)

        transport = HttpTransport(transport=httpx.MockTransport(handler))
        stage = FetchStage(settings, transport=transport, run_date=RUN_DATE)

        result = await stage.run(sources, only="Virksomhed")

        assert result.total == 1
        assert result.outcomes == {"Virksomhed": SourceOutcome.DONE}
        params = requests[0].url.params
        assert params["Filename"] == "CVR_2_Virksomhed_Total_csv_Virksomhed_289.zip"
        assert params["apikey"] == "test-key"
        assert (stage.download_dir / params["Filename"]).stat().st_size == 500

    @pytest.mark.asyncio
    async def test_failure_is_isolated_per_source(self, settings, sources):
        def handler(request):
            if "Virksomhed" in request.url.params["Filename"]:
                return httpx.Response(500)
            return httpx.Response(200, content=b"z" * 500)

        transport = HttpTransport(transport=httpx.MockTransport(handler))
        stage = FetchStage(settings, transport=transport, run_date=RUN_DATE)

        result = await stage.run(sources)

        assert result.total == 3
        assert result.failed == 1
        assert result.succeeded == 2
        assert result.outcomes["Virksomhed"] == SourceOutcome.FAILED
        assert "Virksomhed" in result.errors
        assert result.exit_code == 1

    @pytest.mark.asyncio
    async def test_tiny_download_is_rejected(self, make_settings, sources):
        settings = make_settings(MIN_ARTIFACT_BYTES=100)
        transport = HttpTransport(transport=httpx.MockTransport(lambda r: httpx.Response(200, content=b"tiny")))
        stage = FetchStage(settings, transport=transport, run_date=RUN_DATE)

        result = await stage.run(sources, only="Telefaxnummer")

        assert result.failed == 1
        assert not (stage.download_dir / sources[0].artifact_filename).exists()

    @pytest.mark.asyncio
    async def test_per_source_timeout(self, settings, sources):
        transport = AsyncMock(spec=HttpTransport)
        transport.download.return_value = (True, 500)
        stage = FetchStage(settings, transport=transport, run_date=RUN_DATE)

        await stage.run(sources)

        timeouts = [call.kwargs["timeout"] for call in transport.download.call_args_list]
        assert timeouts == [600, 1200, settings.DOWNLOAD_TIMEOUT]

    @pytest.mark.asyncio
    async def test_dry_run(self, settings, sources):
        transport = AsyncMock(spec=HttpTransport)
        stage = FetchStage(settings, dry_run=True, transport=transport, run_date=RUN_DATE)

        result = await stage.run(sources)

        transport.download.assert_not_called()
        assert result.ok
        assert set(result.outcomes.values()) == {SourceOutcome.DRY_RUN}
        assert not stage.download_dir.exists()

    @pytest.mark.asyncio
    async def test_unknown_source_selects_nothing(self, settings, sources):
        stage = FetchStage(settings, transport=AsyncMock(spec=HttpTransport), run_date=RUN_DATE)

        result = await stage.run(sources, only="Nope")

        assert result.total == 0
        assert result.ok


def test_parse_run_date():
    assert parse_run_date("2024-05-17") == RUN_DATE
    assert parse_run_date("now") == date.today()
    assert parse_run_date(None) == date.today()
    with pytest.raises(ValueError):
        parse_run_date("17-05-2024")


class TestExtractStage:
    @pytest.fixture
    def archives(self, settings, sources, make_zip):
        def _write(names=None):
            folder = download_dir(settings)
            folder.mkdir(parents=True, exist_ok=True)
            for source in sources:
                if names is None or source.name in names:
                    (folder / source.artifact_filename).write_bytes(
                        make_zip({f"{source.name}.csv": "Name,Value\na,1\n"})
                    )
        return _write

    @pytest.mark.asyncio
    async def test_extracts_each_source(self, settings, sources, archives):
        archives()
        stage = ExtractStage(settings, run_date=RUN_DATE)

        result = await stage.run(sources)

        assert result.ok
        for source in sources:
            out = extracted_dir(settings.DATA_DIR, source.name)
            assert (out / f"{source.name}.csv").is_file()
            assert (out / MARKER_NAME).is_file()

    @pytest.mark.asyncio
    async def test_stale_files_are_replaced(self, settings, sources, archives):
        archives()
        out = extracted_dir(settings.DATA_DIR, "Virksomhed")
        out.mkdir(parents=True)
        (out / "stale.csv").write_text("old\n")

        await ExtractStage(settings, run_date=RUN_DATE).run(sources, only="Virksomhed")

        assert not (out / "stale.csv").exists()
        assert (out / "Virksomhed.csv").exists()

    @pytest.mark.asyncio
    async def test_cache_reuses_marked_directory(self, make_settings, sources, archives):
        settings = make_settings(EXTRACT_CACHE_ENABLED=True)
        archives()
        await ExtractStage(settings, run_date=RUN_DATE).run(sources)
        extra = extracted_dir(settings.DATA_DIR, "Virksomhed") / "kept.csv"
        extra.write_text("x\n")

        result = await ExtractStage(settings, run_date=RUN_DATE).run(sources)

        assert set(result.outcomes.values()) == {SourceOutcome.CACHED}
        assert extra.exists()

    @pytest.mark.asyncio
    async def test_missing_archive_fails_source(self, settings, sources, archives):
        archives(names={"Telefaxnummer"})

        result = await ExtractStage(settings, run_date=RUN_DATE).run(sources)

        assert result.succeeded == 1
        assert result.failed == 2

    @pytest.mark.asyncio
    async def test_corrupt_archive_removes_output(self, settings, sources, archives):
        archives()
        bad = sources[0]
        (download_dir(settings) / bad.artifact_filename).write_bytes(b"garbage")

        result = await ExtractStage(settings, run_date=RUN_DATE).run(sources, only=bad.name)

        assert result.failed == 1
        assert not extracted_dir(settings.DATA_DIR, bad.name).exists()

    @pytest.mark.asyncio
    async def test_missing_download_dir_fails_every_source(self, settings, sources):
        result = await ExtractStage(settings, run_date=RUN_DATE).run(sources)

        assert result.total == 3
        assert result.failed == 3

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, settings, sources, archives):
        archives(names={"Telefaxnummer"})

        result = await ExtractStage(settings, dry_run=True, run_date=RUN_DATE).run(sources)

        assert result.ok
        assert set(result.outcomes.values()) == {SourceOutcome.DRY_RUN}
        assert not extracted_dir(settings.DATA_DIR, "Telefaxnummer").exists()


class TestImportStage:
    @pytest.fixture
    def extracted(self, settings, write_csv):
        def _write(name, files):
            out = extracted_dir(settings.DATA_DIR, name)
            for file_name, content in files.items():
                write_csv(content, name=file_name, directory=out)
            return out
        return _write

    def test_find_csv_files(self, tmp_path):
        (tmp_path / "b.csv").write_text("x")
        (tmp_path / "a.csv").write_text("x")
        (tmp_path / "readme.txt").write_text("x")

        assert [p.name for p in find_csv_files(tmp_path)] == ["a.csv", "b.csv"]

    @pytest.mark.asyncio
    async def test_imports_into_prefixed_table(self, make_settings, sources, extracted):
        settings = make_settings(IMPORT_METHOD="batched")
        extracted("Telefaxnummer", {"data.csv": "Telefaxnummer,CVR-nr.\n12345678,1\n"})
        engine = FakeEngine()

        result = await ImportStage(settings, engine=engine).run(sources, only="Telefaxnummer")

        assert result.ok
        assert "DROP TABLE IF EXISTS `cvr_import_telefaxnummer`" in engine.conn.statements
        assert engine.conn.rows == [{"telefaxnummer": "12345678", "cvr_nr": "1"}]
        assert engine.disposed is False

    @pytest.mark.asyncio
    async def test_missing_directory_fails_source(self, settings, sources):
        result = await ImportStage(settings, engine=FakeEngine()).run(sources)

        assert result.failed == 3

    @pytest.mark.asyncio
    async def test_failed_file_fails_source(self, make_settings, sources, extracted):
        settings = make_settings(IMPORT_METHOD="batched")
        extracted("Telefaxnummer", {"a.csv": "", "b.csv": "x\n1\n"})
        engine = FakeEngine()

        result = await ImportStage(settings, engine=engine).run(sources, only="Telefaxnummer")

        assert result.failed == 1
        assert engine.conn.rows == [{"x": "1"}]

    @pytest.mark.asyncio
    async def test_connection_failure_fails_every_source(self, settings, sources):
        engine = FakeEngine(connect_error=OSError("refused"))

        result = await ImportStage(settings, engine=engine).run(sources)

        assert result.failed == 3
        assert result.stage == StageName.IMPORT

    @pytest.mark.asyncio
    async def test_dry_run_needs_no_database(self, settings, sources, extracted):
        for source in sources:
            extracted(source.name, {"data.csv": "a,b\n1,2\n"})

        result = await ImportStage(settings, dry_run=True).run(sources)

        assert result.ok
        assert set(result.outcomes.values()) == {SourceOutcome.DRY_RUN}

    @pytest.mark.asyncio
    async def test_native_method_from_settings(self, settings, sources, extracted):
        extracted("Telefaxnummer", {"data.csv": "a\n1\n"})
        engine = FakeEngine(FakeConnection(rowcount=1))

        result = await ImportStage(settings, engine=engine).run(sources, only="Telefaxnummer")

        assert result.ok
        assert any(s.startswith("LOAD DATA LOCAL INFILE") for s in engine.conn.statements)

    @pytest.mark.asyncio
    async def test_engine_allows_local_infile_for_method_override(self, make_settings):
        settings = make_settings(IMPORT_METHOD="batched")
        stage = ImportStage(settings, method="native")

        with patch("core.database.create_async_engine", return_value=FakeEngine()) as mock_create:
            await stage.setup()

        assert stage.loader.method == "native"
        assert mock_create.call_args.kwargs["connect_args"] == {"local_infile": True}
        await stage.teardown()
        assert stage.engine is None


class TestEngineFactory:
    @pytest.mark.parametrize("configured,method,expected", [
        ("native", None, {"local_infile": True}),
        ("batched", None, {}),
        ("batched", "native", {"local_infile": True}),
        ("native", "batched", {}),
    ])
    def test_local_infile_follows_method_in_use(self, make_settings, configured, method, expected):
        settings = make_settings(IMPORT_METHOD=configured)

        with patch("core.database.create_async_engine") as mock_create:
            create_engine_from_settings(settings, method=method)

        assert mock_create.call_args.kwargs["connect_args"] == expected
