"""Test suite for the Parking Ledger"""
