"""
Engine Package

Game-side logic that sits on top of the persistence layer: scoring,
leaderboard ranking and guess recording.
"""
