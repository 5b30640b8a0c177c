import json
import logging
from mangum import Mangum
from main import app

logger = logging.getLogger(__name__)

# Lambda invocations are short-lived; the OTP sweep task is never started
handler = Mangum(app, lifespan="off")


def lambda_handler(event, context):
    # Scheduled EventBridge pings keep the function warm without touching the app
    if event.get("source") == "aws.events":
        logger.info("Warm-up invocation")
        return {"statusCode": 200, "body": json.dumps({"success": True, "warm": True})}
    return handler(event, context)
