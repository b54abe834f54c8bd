import pytest

from packages.marketplace_ingestion.exceptions import JobFatalError, UnsupportedFormatError
from packages.marketplace_ingestion.pipeline import ImportPipeline, build_job_controller


def _drain(store):
    row = store.next_queued_job()
    return build_job_controller(store).run_queued(row) if row else None


def test_identical_rows_in_one_upload(store, csv_factory):
    content = csv_factory([["2024-11-01", "Venda", "100.00"], ["2024-11-01", "Venda", "100.00"]])

    result = ImportPipeline(store).start_import("t1", "outro", None, "vendas.csv", content)

    assert result.statistics.generated_count == 2
    assert result.partition.novel_indices == [0]
    assert result.partition.internal_duplicates == [1]
    row = store.get_job(result.job.id)
    assert row["total_rows"] == 2
    assert row["rows_duplicated"] == 1
    assert row["rows_processed"] == 1
    assert len(row["payload"]["transactions"]) == 1
    assert row["payload"]["account_label"] == "outro"
    assert row["payload"]["origin"] == "delimited_file"

    job = _drain(store)
    assert job.rows_imported == 1
    assert job.rows_processed == job.total_rows == 2
    stored = store.transactions[0]
    assert stored["external_reference"] == "outro_2024-11-01__Venda_100.00"
    assert stored["status"] == "imported"
    assert stored["import_job_id"] == job.id


def test_reimport_is_idempotent(store, csv_factory):
    content = csv_factory([["2024-11-01", "Venda", "100.00"]])
    pipeline = ImportPipeline(store)

    pipeline.start_import("t1", "outro", "Loja", "vendas.csv", content)
    _drain(store)
    second = pipeline.start_import("t1", "outro", "Loja", "vendas.csv", content)

    assert second.partition.novel_indices == []
    assert second.partition.duplicate_count == 1
    job = _drain(store)
    assert job.status.value == "concluded"
    assert job.rows_imported == 0
    assert job.rows_duplicated == 1
    assert job.rows_processed == 1
    assert len(store.transactions) == 1


def test_same_file_for_other_tenant_is_novel(store, csv_factory):
    content = csv_factory([["2024-11-01", "Venda", "100.00"]])
    pipeline = ImportPipeline(store)
    pipeline.start_import("t1", "outro", None, "vendas.csv", content)
    _drain(store)

    other = pipeline.start_import("t2", "outro", None, "vendas.csv", content)

    assert other.partition.novel_indices == [0]


def test_blank_rows_are_dropped(store, csv_factory):
    content = csv_factory([["2024-11-01", "Venda", "100.00"], ["", "", "0"]])

    result = ImportPipeline(store).start_import("t1", "outro", None, "vendas.csv", content)

    assert result.statistics.empty_rows == 1
    assert result.statistics.generated_count == 1
    assert result.job.total_rows == 1


def test_unsupported_file_creates_no_job(store):
    with pytest.raises(UnsupportedFormatError):
        ImportPipeline(store).start_import("t1", "outro", None, "extrato.pdf", b"%PDF-1.4")
    assert store.jobs == {}


def test_queue_failure_marks_job_failed(store, csv_factory, monkeypatch):
    pipeline = ImportPipeline(store)

    def explode(*args, **kwargs):
        raise RuntimeError("lookup pool exhausted")

    monkeypatch.setattr(pipeline.resolver, "resolve", explode)

    with pytest.raises(JobFatalError):
        pipeline.start_import("t1", "outro", None, "vendas.csv", csv_factory([["2024-11-01", "Venda", "1.00"]]))

    (job,) = store.jobs.values()
    assert job["status"] == "failed"
    assert job["error_message"] == "lookup pool exhausted"


def test_result_summary(store, csv_factory):
    result = ImportPipeline(store).start_import(
        "t1", "Mercado Livre", None, "tarifas.csv",
        csv_factory(
            [["01/11/2024", "Tarifa de envio", "-12.50"]],
            headers=["Data da tarifa", "Tipo de tarifa", "Valor líquido"],
        ),
    )

    summary = result.to_dict()
    assert summary["job"]["channel"] == "mercado_livre"
    assert summary["job"]["status"] == "pending"
    assert summary["novel"] == 1
    assert summary["duplicates"] == 0
    assert summary["statistics"]["generated_count"] == 1
