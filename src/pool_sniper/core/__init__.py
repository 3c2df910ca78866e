"""
Core Layer - Evaluation, risk and orchestration.

This module provides:
    - SniperEngine: Main orchestrator (feed -> evaluator -> risk -> trader -> session)
    - RunState: Process-wide running/stopped flag
    - EngineStats: Runtime statistics
    - BotManager: Independent engines keyed by user id
    - Evaluator: Concurrent five-source scoring and the admission gate
    - RiskGate: Kill switch, bankroll sizing and trailing stop
    - RedisFlagSource / ControlLogSource: Kill-switch sources
    - PositionMonitor: Price polling for trailing-stop exits

Data Flow:
    1. Feed delivers PoolCreated
    2. Evaluator gathers signals and applies the AND-gate
    3. Session confirms the schedule window
    4. RiskGate checks the kill switch and logs bankroll
    5. Trader executes; the session tracks the resulting position
"""

# Evaluation
from .evaluator import Evaluator, Decision, SignalSet, gate

# Risk
from .risk import RiskGate, trailing_stop_for
from .kill_switch import KILL_SWITCH_KEY, RedisFlagSource, ControlLogSource, ControlLogError

# Orchestration
from .position_monitor import PositionMonitor
from .engine import SniperEngine, RunState, EngineStats, BotManager

__all__ = [
    # Evaluation
    "Evaluator",
    "Decision",
    "SignalSet",
    "gate",
    # Risk
    "RiskGate",
    "trailing_stop_for",
    "KILL_SWITCH_KEY",
    "RedisFlagSource",
    "ControlLogSource",
    "ControlLogError",
    # Orchestration
    "PositionMonitor",
    "SniperEngine",
    "RunState",
    "EngineStats",
    "BotManager",
]
