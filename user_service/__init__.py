"""Servicio de usuarios de Pixel Money: conexión a Turso y migración del schema de 'users'."""
