"""Multi-provider AI analysis: scoring, explanations and sentiment"""
