"""
ABC Bédarieux newsletter server
===============================

Run with:
    python app.py

Visit:
    http://localhost:5000/api/newsletter/gdpr         - Public API
    http://localhost:5000/api/admin/newsletter/...    - Admin API (session required)
"""

from bedarieux import create_app
from bedarieux.core.config import Config

app = create_app()


if __name__ == '__main__':
    print("\n" + "=" * 60)
    print("ABC Bédarieux Newsletter")
    print("=" * 60)
    print(f"Public API:      http://localhost:{Config.port}/api/newsletter")
    print(f"Admin API:       http://localhost:{Config.port}/api/admin/newsletter")
    print(f"Email provider:  {app.config['EMAIL_PROVIDER']}")
    print("=" * 60 + "\n")

    app.run(host='0.0.0.0', port=Config.port, debug=True)
