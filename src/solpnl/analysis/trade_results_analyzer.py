import pandas as pd
from typing import Dict, List
import numpy as np
from ..core.types import TradeRecord

COLUMNS = [
    'executed_at', 'mint', 'symbol', 'strategy', 'trigger', 'pnl_pct', 'pnl_base',
    'quantity_sold', 'quantity_received', 'dry_run', 'tx_signature',
]

class TradeResultsAnalyzer:
    def __init__(self, records: List[TradeRecord]):
        """Initialize with trade history records"""
        self.df = pd.DataFrame(
            [{c: getattr(r, c) for c in COLUMNS} for r in records],
            columns=COLUMNS,
        )
        self.df['trigger'] = self.df['trigger'].map(lambda t: getattr(t, 'value', t))
        self.df['executed_at'] = pd.to_datetime(self.df['executed_at'])

        # Decimals become floats for statistics only
        for column in ('pnl_pct', 'pnl_base', 'quantity_sold', 'quantity_received'):
            self.df[column] = pd.to_numeric(self.df[column].map(float), errors='coerce')

        self.df['outcome'] = np.select(
            [self.df['pnl_base'] > 0, self.df['pnl_base'] < 0],
            ['win', 'loss'],
            default='flat'
        )

    @classmethod
    def from_history(cls, history, dry_run=None) -> "TradeResultsAnalyzer":
        records = [r for r in history.all() if dry_run is None or r.dry_run == dry_run]
        return cls(records)

    def analyze_triggers(self) -> Dict:
        """Performance per exit trigger"""
        analysis = {}
        for trigger, trigger_data in self.df.groupby('trigger'):
            winning_trades = trigger_data[trigger_data['pnl_base'] > 0]
            losing_trades = trigger_data[trigger_data['pnl_base'] <= 0]
            analysis[trigger] = {
                'trade_count': len(trigger_data),
                'win_rate': len(winning_trades) / len(trigger_data) if len(trigger_data) > 0 else 0,
                'total_pnl': trigger_data['pnl_base'].sum(),
                'avg_pnl': trigger_data['pnl_base'].mean(),
                'avg_pnl_pct': trigger_data['pnl_pct'].mean(),
                'profit_factor': abs(
                    winning_trades['pnl_base'].sum() / losing_trades['pnl_base'].sum()
                ) if losing_trades['pnl_base'].sum() != 0 else float('inf')
            }
        return analysis

    def analyze_trades(self) -> Dict:
        """Summary statistics across all trades"""
        if self.df.empty:
            return {'total_trades': 0, 'wins': 0, 'losses': 0, 'win_rate': 0, 'total_pnl': 0.0}

        wins = int((self.df['outcome'] == 'win').sum())
        losses = int((self.df['outcome'] == 'loss').sum())
        return {
            'total_trades': len(self.df),
            'wins': wins,
            'losses': losses,
            'win_rate': wins / len(self.df),
            'total_pnl': float(self.df['pnl_base'].sum()),
            'avg_pnl': float(self.df['pnl_base'].mean()),
            'best_trade': float(self.df['pnl_base'].max()),
            'worst_trade': float(self.df['pnl_base'].min()),
            'total_received': float(self.df['quantity_received'].sum()),
            'first_trade': self.df['executed_at'].min(),
            'last_trade': self.df['executed_at'].max(),
        }

    def daily_pnl(self) -> pd.Series:
        """Realized PnL per UTC day"""
        if self.df.empty:
            return pd.Series(dtype=float)
        return self.df.set_index('executed_at')['pnl_base'].resample('D').sum()

    def print_analysis(self, logger) -> None:
        summary = self.analyze_trades()
        logger.info(f"Trades: {summary['total_trades']} ({summary['wins']}W/{summary['losses']}L), "
                    f"total PnL {summary['total_pnl']:+.6f} SOL")
        for trigger, stats in self.analyze_triggers().items():
            logger.info(f"  {trigger}: {stats['trade_count']} trades, win rate {stats['win_rate']:.0%}, "
                        f"PnL {stats['total_pnl']:+.6f} SOL")
