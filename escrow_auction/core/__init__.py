"""Auction core: state machine, funds ledger, clock, storage, config"""
