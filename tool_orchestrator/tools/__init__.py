"""
工具目录：封闭工具词表 + 按工具名分派的参数模型

公共模块，供意图分类与计划生成共用。
"""
