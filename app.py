"""
WSGI entry point for the fieldguard service.

Usage:
    # Production WSGI deployment
    gunicorn --config gunicorn.conf.py "app:application"

    # Development server
    export FLASK_ENV=development
    python app.py --port 5000
"""

import argparse
import os

from fieldguard.app import create_app

application = create_app()


def main() -> None:
    parser = argparse.ArgumentParser(description='fieldguard development server')
    parser.add_argument(
        '--host',
        default=os.getenv('FLASK_HOST', '127.0.0.1'),
        help='Development server host (default: 127.0.0.1)'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=int(os.getenv('FLASK_PORT', '5000')),
        help='Development server port (default: 5000)'
    )
    args = parser.parse_args()

    application.run(host=args.host, port=args.port, debug=application.config['DEBUG'])


if __name__ == '__main__':
    main()
