from api.routes import create_app

# Vercel serves this module's WSGI ``app`` for every /api/* route (see vercel.json)
app = create_app()

# This is for local development
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8000)
