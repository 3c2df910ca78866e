"""
Pool Sniper.

An automated liquidity-pool sniper: listens for new pool creations, scores
each pool against five independent data sources, gates admitted pools on a
schedule window and a kill switch, executes the buy, and exits open
positions on a trailing stop.
"""

__version__ = "0.1.0"
