from fastapi import FastAPI
from fastapi.responses import JSONResponse

api_prefix = "/api"

app = FastAPI(title="Study Planner API")


@app.get(api_prefix)
async def read_status():
    return JSONResponse({"message": "Welcome to Study Planner API"}, status_code=200)


@app.post(api_prefix)
async def reject_post():
    return JSONResponse({"error": "Method not allowed"}, status_code=405)
