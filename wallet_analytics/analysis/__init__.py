from .fifo import FifoLedger, realized_daily_pnl
from .covariance import ShrinkageEstimate, ledoit_wolf_shrinkage
from .optimization import FrontierPoint, efficient_frontier, solve_max_sharpe, solve_min_variance
from .risk import PortfolioRiskSummary, RiskSummaryEstimator, compute_portfolio_risk
from .portfolio import OptimizerDiagnostic, PortfolioOptimization, PortfolioOptimizer, optimize_portfolio
from .pnl import PortfolioPnL, compute_portfolio_pnl
