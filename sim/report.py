"""
sim/report.py
=============
Turn a run's per-tick history into a pandas table and a short text summary.

Usage::

    sim = Simulation(seed=1, record_history=True)
    sim.run()
    frame = history_frame(sim.history)
    write_report(frame, "roadreport.csv")
"""

from typing import Any, Dict, List, Sequence

import pandas as pd

# Counters whose per-tick increments are interesting on their own.
_RATE_COLUMNS = ("broadcasts", "rx_accepted", "deliveries", "delivery_failures")


def history_frame(history: Sequence[Dict[str, Any]]) -> pd.DataFrame:
    """Build a frame indexed by simulation time from snapshot rows.

    Several ticks can share one time; only the last snapshot of each is kept.
    Per-tick deltas of the main counters are added as ``d_<name>`` columns.
    """
    frame = pd.DataFrame(list(history))
    if frame.empty:
        return frame
    frame = frame.drop_duplicates(subset="time", keep="last").set_index("time")
    for name in _RATE_COLUMNS:
        if name in frame.columns:
            frame[f"d_{name}"] = frame[name].diff().fillna(frame[name]).astype(int)
    return frame


def summary_lines(frame: pd.DataFrame) -> List[str]:
    """Human readable end-of-run figures."""
    if frame.empty:
        return ["(no ticks recorded)"]
    last = frame.iloc[-1]
    lines = [
        f"ticks recorded:    {len(frame)}",
        f"end time:          {frame.index[-1]:.1f} s",
        f"peak live cars:    {int(frame['cars'].max())}",
        f"alerts logged:     {int(last['alerts'])}",
    ]
    heard = int(last["rx_accepted"] + last["rx_duplicate"])
    if heard:
        lines.append(f"duplicate share:   {last['rx_duplicate'] / heard * 100:.1f}%")
    attempts = int(last["deliveries"] + last["delivery_failures"])
    if attempts:
        lines.append(f"delivery success:  {last['deliveries'] / attempts * 100:.1f}%")
    return lines


def write_report(frame: pd.DataFrame, csv_path: str) -> None:
    """Write the history as CSV."""
    frame.to_csv(csv_path, encoding="utf-8")
