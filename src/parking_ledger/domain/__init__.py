"""Domain layer: entities, aggregates, pricing and errors"""
