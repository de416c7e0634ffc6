"""
Performance metrics for trading strategies.

Includes standard metrics (Sharpe, Calmar, drawdown, win rate) and
CAPM-based alpha/beta against the round's benchmark returns.

Every function returns None rather than NaN or infinity when its result is
undefined.
"""

import math
import numpy as np
from typing import List, Dict, Any, Optional, Sequence

PERIODS_PER_YEAR = 252


def _finite(value) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        return None
    return value


# =============================================================================
# CAPM / Factor Metrics (Alpha & Beta)
# =============================================================================

def calculate_strategy_returns(equity_curve: Sequence[float]) -> Optional[np.ndarray]:
    """
    Calculate log returns from an equity curve.

    Returns None when the curve touches zero or below, where log returns are
    undefined.
    """
    equity_array = np.asarray(equity_curve, dtype=float)
    if len(equity_array) < 2:
        return np.array([])
    if np.any(equity_array <= 0):
        return None

    # Use log returns for consistency with market data
    return np.log(equity_array[1:] / equity_array[:-1])


def calculate_beta(
    strategy_returns: np.ndarray,
    benchmark_returns: np.ndarray
) -> Optional[float]:
    """
    Calculate strategy beta relative to the benchmark.

    β = Cov(r_strategy, r_benchmark) / Var(r_benchmark)

    - β ≈ 1: Strategy moves with the market
    - β > 1: Strategy is more volatile than market
    - β ≈ 0: Market neutral (or flat) strategy
    """
    min_len = min(len(strategy_returns), len(benchmark_returns))
    if min_len < 2:
        return None

    strat = strategy_returns[:min_len]
    bench = benchmark_returns[:min_len]

    bench_var = np.var(bench, ddof=1)
    if not bench_var > 0:
        return None

    covariance = np.cov(strat, bench, ddof=1)[0, 1]
    return _finite(covariance / bench_var)


def calculate_alpha(
    strategy_returns: np.ndarray,
    benchmark_returns: np.ndarray,
    beta: Optional[float],
    periods_per_year: int = PERIODS_PER_YEAR
) -> Optional[float]:
    """
    CAPM alpha: mean(r_strategy) - β * mean(r_benchmark), annualized and
    expressed in percent.
    """
    min_len = min(len(strategy_returns), len(benchmark_returns))
    if beta is None or min_len < 2:
        return None

    strat = strategy_returns[:min_len]
    bench = benchmark_returns[:min_len]

    alpha = np.mean(strat) - beta * np.mean(bench)
    return _finite(alpha * periods_per_year * 100)


def calculate_cumulative_alpha(
    strategy_returns: np.ndarray,
    benchmark_returns: np.ndarray,
    beta: Optional[float]
) -> Optional[List[float]]:
    """
    Running sum of per-tick excess returns (r_strategy - β * r_benchmark),
    in percent.
    """
    if beta is None:
        return None

    min_len = min(len(strategy_returns), len(benchmark_returns))
    excess = (strategy_returns[:min_len] - beta * benchmark_returns[:min_len]) * 100
    cumulative = np.cumsum(excess)
    if not np.all(np.isfinite(cumulative)):
        return None
    return [float(v) for v in cumulative]


# =============================================================================
# Standard Performance Metrics
# =============================================================================

def calculate_sharpe_ratio(
    equity_curve: Sequence[float],
    risk_free_rate: float = 0.0,
    periods_per_year: int = PERIODS_PER_YEAR
) -> Optional[float]:
    """
    Calculate annualized Sharpe ratio from simple tick returns.

    Returns None with fewer than 2 return samples or zero deviation.
    """
    if len(equity_curve) < 3:
        return None

    equity_array = np.asarray(equity_curve, dtype=float)
    if np.any(equity_array[:-1] <= 0):
        return None
    returns = np.diff(equity_array) / equity_array[:-1]

    std_return = np.std(returns)
    if not std_return > 0:
        return None

    sharpe = (np.mean(returns) - risk_free_rate / periods_per_year) / std_return * np.sqrt(periods_per_year)
    return _finite(sharpe)


def calculate_max_drawdown(equity_curve: Sequence[float]) -> float:
    """
    Calculate maximum drawdown as a percentage.

    Returns:
        Max drawdown as positive percentage (e.g., 15.5 for 15.5% drawdown)
    """
    if len(equity_curve) < 2:
        return 0.0

    equity_array = np.asarray(equity_curve, dtype=float)
    peak = np.maximum.accumulate(equity_array)
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdown = np.where(peak > 0, (peak - equity_array) / peak * 100, 0.0)

    return _finite(np.max(drawdown)) or 0.0


def calculate_calmar_ratio(
    equity_curve: Sequence[float],
    periods_per_year: int = PERIODS_PER_YEAR
) -> Optional[float]:
    """
    Calculate Calmar ratio (annualized return % / max drawdown %).

    Returns:
        Calmar ratio or None if max drawdown is 0
    """
    if len(equity_curve) < 2 or equity_curve[0] <= 0:
        return None

    max_dd = calculate_max_drawdown(equity_curve)
    if max_dd == 0:
        return None

    total_return = (equity_curve[-1] - equity_curve[0]) / equity_curve[0]
    num_periods = len(equity_curve) - 1
    growth = 1 + total_return
    if growth <= 0:
        annualized_return = -1.0
    else:
        try:
            annualized_return = growth ** (periods_per_year / num_periods) - 1
        except OverflowError:
            return None

    return _finite(annualized_return * 100 / max_dd)


def calculate_win_rate(trades: List[Dict[str, Any]]) -> Optional[float]:
    """
    Calculate win rate from trade history.

    Returns:
        Win rate as percentage (0-100) or None if no closed trades
    """
    # Only count closing trades
    closing_trades = [t for t in trades if 'CLOSE' in t.get('action', '')]

    if len(closing_trades) == 0:
        return None

    winning_trades = sum(1 for t in closing_trades if t.get('pnl', 0) > 0)

    return float(winning_trades / len(closing_trades) * 100)


def calculate_all_metrics(
    equity_values: Sequence[float],
    trades: List[Dict[str, Any]],
    initial_equity: float,
    survival_time: int,
    benchmark_returns: Optional[Sequence[float]] = None
) -> Dict[str, Any]:
    """
    Calculate all performance metrics including CAPM alpha/beta.

    Args:
        equity_values: Equity at the end of each simulated tick
        trades: List of trade records
        initial_equity: Starting equity (the curve's implicit first point)
        survival_time: Number of ticks survived
        benchmark_returns: Benchmark log return into each tick (optional)

    Returns:
        Dictionary with all metrics. ``cumulative_alpha`` lines up with
        ``equity_values`` tick for tick.
    """
    curve = [initial_equity] + list(equity_values)
    final_equity = curve[-1]
    total_return = (final_equity - initial_equity) / initial_equity * 100

    metrics = {
        'final_equity': float(final_equity),
        'total_return': _finite(total_return) or 0.0,
        'sharpe_ratio': calculate_sharpe_ratio(curve),
        'max_drawdown': calculate_max_drawdown(curve),
        'calmar_ratio': calculate_calmar_ratio(curve),
        'win_rate': calculate_win_rate(trades),
        'total_trades': len([t for t in trades if 'CLOSE' in t.get('action', '')]),
        'survival_time': survival_time,
        # CAPM metrics (None without a benchmark)
        'alpha': None,
        'beta': None,
        'cumulative_alpha': None,
    }

    if benchmark_returns is not None and len(benchmark_returns) > 0:
        strategy_returns = calculate_strategy_returns(curve)
        if strategy_returns is not None:
            bench = np.asarray(benchmark_returns[:len(strategy_returns)], dtype=float)

            beta = calculate_beta(strategy_returns, bench)
            metrics['beta'] = beta
            metrics['alpha'] = calculate_alpha(strategy_returns, bench, beta)
            metrics['cumulative_alpha'] = calculate_cumulative_alpha(strategy_returns, bench, beta)

    return metrics
