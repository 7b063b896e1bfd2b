import os

from contract_lifecycle import create_app

# FLASK_ENV picks the config class; development by default
app = create_app(os.getenv("FLASK_ENV", "development"))

if __name__ == "__main__":
    # bind on all interfaces for Docker
    app.run(host="0.0.0.0", port=5000, debug=True)
