"""意图分析"""
