"""Core ledger components"""
