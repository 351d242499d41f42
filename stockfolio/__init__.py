"""Stockfolio: personal stock holdings tracker with live price refresh."""
