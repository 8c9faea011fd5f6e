from typer.testing import CliRunner

from mercator import cli, repository, service

runner = CliRunner()


def test_evaluate_passes_commodity_type_and_quick_bucket(fake_repository, monkeypatch):
    seen = []
    evaluate_cargo = service.evaluate_cargo

    async def _capture(repo, cargo, as_of=None):
        seen.append(cargo)
        return await evaluate_cargo(repo, cargo, as_of)

    monkeypatch.setattr(repository, "RuleRepository", lambda: fake_repository)
    monkeypatch.setattr(service, "evaluate_cargo", _capture)

    result = runner.invoke(
        cli.app,
        [
            "evaluate",
            "--carrier", "1",
            "--quick-bucket", "truck",
            "--commodity-type", "rolling_stock",
            "--length", "500",
            "--width", "250",
            "--as-of", "2026-01-15",
        ],
    )

    assert result.exit_code == 0, result.output
    cargo = seen[0]
    assert cargo.category is None
    assert cargo.quick_bucket == "truck"
    assert cargo.commodity_type == "rolling_stock"
    assert "HH" in result.output
    assert fake_repository.closed
