import uvicorn
import os
import sys

# Ensure project root is in sys.path
sys.path.insert(0, os.getcwd())

from config.settings import API_HOST, API_PORT

if __name__ == "__main__":
    print(f"Starting report composition API on {API_HOST}:{API_PORT}...")
    uvicorn.run("api.main:app", host=API_HOST, port=API_PORT, reload=True)
