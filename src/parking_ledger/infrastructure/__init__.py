"""Infrastructure layer: persistence, messaging and time sources"""
