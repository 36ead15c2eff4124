# -*- coding: utf-8 -*-
"""
Utility helpers / 工具函数
"""
