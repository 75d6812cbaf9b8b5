"""Ranked prediction-market feed.

Scores market listings, keeps a diversity-constrained top-K set per feed
segment in a fast sorted-set store, and serves cursor-stable pages over it
while rebuilds run in the background.
"""

__version__ = "0.4.0"
