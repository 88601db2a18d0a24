"""Роутеры FastAPI"""
