"""Application layer: use-case service and DTOs"""
