"""Product stock monitor.

Polls an availability endpoint on a fixed cadence, keeps per-period counters and
the daily in-stock timeline in a key/value store, and posts alerts plus
daily/weekly/monthly summaries to Telegram.
"""
