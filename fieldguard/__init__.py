"""
fieldguard - declarative request-payload validation for Flask services.

Request shapes are dataclasses whose fields declare an external name and an ordered rule list.
A shared rule registry maps rule names to predicates and message templates, the validation engine
checks populated objects against those declarations, and the request adapter binds the engine to
Flask request bodies, query strings, route parameters and headers.

    from fieldguard.app import create_app
    app = create_app('development')
"""

__version__ = "1.0.0"
__title__ = "fieldguard"
__description__ = "Declarative request-payload validation for Flask services"
