import numpy as np
import pandas as pd

from stockcast.backtesting.reports import load_backtest_results, load_validation_results
from stockcast.run_backtest import main


def _write_prices(data_dir, symbol: str, n: int = 90, seed: int = 0) -> None:
    rng = np.random.RandomState(seed)
    close = 20 * np.exp(np.cumsum(rng.normal(0.0, 0.02, n)))
    df = pd.DataFrame({
        "Date": pd.bdate_range("2021-01-04", periods=n).strftime("%Y-%m-%d"),
        "Open": close * 0.995,
        "High": close * 1.02,
        "Low": close * 0.98,
        "Close": close,
        "Volume": rng.uniform(1e5, 5e5, n),
    })
    df.to_csv(data_dir / f"{symbol}.csv", index=False)


def test_backtest_command_saves_results(tmp_path, capsys) -> None:
    _write_prices(tmp_path, "AAA", seed=1)
    _write_prices(tmp_path, "BBB", seed=2)
    out = tmp_path / "results.txt"

    code = main(["--data-dir", str(tmp_path), "backtest", "--strategy", "mean-reversion", "--save", str(out)])

    assert code == 0
    assert "BACKTEST RESULTS" in capsys.readouterr().out
    assert load_backtest_results(out).total_predictions == 2 * (90 - 20 - 5)


def test_cv_command_saves_average_metrics(tmp_path) -> None:
    for i, symbol in enumerate(["AAA", "BBB", "CCC"]):
        _write_prices(tmp_path, symbol, seed=i)
    out = tmp_path / "cv.txt"

    code = main(["--data-dir", str(tmp_path), "cv", "--folds", "3", "--save", str(out)])

    assert code == 0
    assert 0.0 <= load_validation_results(out).accuracy <= 1.0


def test_missing_data_directory_contents(tmp_path, capsys) -> None:
    code = main(["--data-dir", str(tmp_path), "backtest"])

    assert code == 1
    assert "No price files found" in capsys.readouterr().out


def test_library_errors_become_exit_code_two(tmp_path) -> None:
    _write_prices(tmp_path, "AAA")

    assert main(["--data-dir", str(tmp_path), "cv", "--folds", "1"]) == 2


def test_cv_fold_count_defaults_to_environment(tmp_path, capsys, monkeypatch) -> None:
    for i, symbol in enumerate(["AAA", "BBB", "CCC"]):
        _write_prices(tmp_path, symbol, seed=i)
    monkeypatch.setenv("STOCKCAST_CV_FOLDS", "4")

    code = main(["--data-dir", str(tmp_path), "cv", "--model-type", "breakout"])

    out = capsys.readouterr().out
    assert code == 0
    assert "Folds: 4" in out
    assert "(4-fold average)" in out
