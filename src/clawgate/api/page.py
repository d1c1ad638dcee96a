"""Chat page — single self-contained HTML document served at GET /."""

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

router = APIRouter()

CHAT_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>clawgate</title>
<style>
  * { margin: 0; padding: 0; box-sizing: border-box; }
  body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
         background: #15171c; color: #e8e8e8; height: 100vh;
         display: flex; flex-direction: column; }
  header { padding: 12px 20px; background: #1e2128; border-bottom: 1px solid #2d3240;
           display: flex; justify-content: space-between; align-items: center; }
  header h1 { font-size: 17px; font-weight: 600; }
  #shutdown { padding: 5px 12px; border-radius: 6px; border: 1px solid #b5443a;
              background: transparent; color: #e0675c; cursor: pointer; }
  #shutdown:hover { background: #b5443a; color: #fff; }
  #log { flex: 1; overflow-y: auto; padding: 20px; display: flex;
         flex-direction: column; gap: 10px; }
  .bubble { max-width: 75%; padding: 9px 13px; border-radius: 10px; line-height: 1.5;
            white-space: pre-wrap; word-break: break-word; }
  .bubble.you { align-self: flex-end; background: #2b4a7a; }
  .bubble.agent { align-self: flex-start; background: #23262e; border: 1px solid #30343f; }
  .bubble.note { align-self: center; background: #4a2020; font-size: 13px; }
  .pending { align-self: flex-start; color: #8a8f99; font-size: 13px; }
  form { display: flex; gap: 8px; padding: 12px; background: #1e2128;
         border-top: 1px solid #2d3240; }
  #text { flex: 1; padding: 10px 13px; border-radius: 8px; border: 1px solid #30343f;
          background: #15171c; color: inherit; font-size: 15px; }
  #send { padding: 10px 18px; border-radius: 8px; border: none; background: #2b4a7a;
          color: inherit; font-size: 15px; cursor: pointer; }
  #send:disabled { opacity: 0.5; cursor: default; }
</style>
</head>
<body>
<header><h1>clawgate</h1><button id="shutdown" type="button">Shutdown</button></header>
<div id="log"></div>
<form id="composer">
  <input id="text" placeholder="Message (/new, /skills, /skill name ...)" autocomplete="off">
  <button id="send" type="submit">Send</button>
</form>
<script>
const log = document.getElementById('log');
const text = document.getElementById('text');
const send = document.getElementById('send');
let senderId = sessionStorage.getItem('clawgate-sender');
if (!senderId) {
  senderId = 'web-' + Math.random().toString(36).slice(2, 8);
  sessionStorage.setItem('clawgate-sender', senderId);
}

function bubble(content, kind) {
  const el = document.createElement('div');
  el.className = kind === 'pending' ? 'pending' : 'bubble ' + kind;
  el.textContent = content;
  log.appendChild(el);
  log.scrollTop = log.scrollHeight;
  return el;
}

async function postJson(path, payload) {
  const res = await fetch(path, {
    method: 'POST',
    headers: {'Content-Type': 'application/json'},
    body: JSON.stringify(payload),
  });
  const data = await res.json().catch(() => ({}));
  if (!res.ok) throw new Error(data.error || ('HTTP ' + res.status));
  return data;
}

document.getElementById('composer').addEventListener('submit', async (ev) => {
  ev.preventDefault();
  const message = text.value.trim();
  if (!message) return;
  text.value = '';
  bubble(message, 'you');
  send.disabled = true;
  const pending = bubble('Agent is thinking...', 'pending');
  try {
    const data = await postJson('/api/chat', {message, senderId});
    bubble(data.reply, 'agent');
  } catch (err) {
    bubble('Error: ' + err.message, 'note');
  } finally {
    pending.remove();
    send.disabled = false;
    text.focus();
  }
});

document.getElementById('shutdown').addEventListener('click', async (ev) => {
  const adminToken = prompt('Admin token:');
  if (!adminToken) return;
  const button = ev.currentTarget;
  button.disabled = true;
  try {
    await postJson('/api/shutdown', {adminToken});
    bubble('Gateway is shutting down...', 'note');
    text.disabled = true;
    send.disabled = true;
  } catch (err) {
    bubble('Shutdown failed: ' + err.message, 'note');
    button.disabled = false;
  }
});

text.focus();
</script>
</body>
</html>
"""


@router.get("/", response_class=HTMLResponse)
async def chat_page():
    return HTMLResponse(CHAT_HTML)
