# HTML page the human opens from the relay link

import html
import json

from pocket_pilot.human_auth.relay_store import RelayRecord

_PAGE_STYLE = """
    body { margin: 0; font-family: "Segoe UI", Arial, sans-serif; background: #f4f6fa; color: #0c1d2a; }
    .wrap { max-width: 720px; margin: 0 auto; padding: 20px; }
    .card { background: #fff; border: 1px solid #d6dfeb; border-radius: 14px; padding: 18px; }
    h1 { font-size: 22px; margin: 0 0 12px; }
    .meta div { background: #eef4fb; border-radius: 8px; padding: 10px; margin: 8px 0; font-size: 14px; }
    .actions { display: flex; gap: 10px; flex-wrap: wrap; margin-top: 12px; }
    button { border: 0; border-radius: 10px; padding: 10px 14px; font-size: 15px; cursor: pointer; color: #fff; background: #123d67; }
    #approve { background: #177245; }
    #reject { background: #93332a; }
    input, textarea { width: 100%; box-sizing: border-box; border-radius: 8px; border: 1px solid #c5d2e4; padding: 10px; margin-top: 8px; }
    img { width: 100%; border-radius: 10px; margin-top: 10px; }
    .muted { color: #4a6279; font-size: 13px; }
    .status { margin-top: 14px; font-weight: 600; }
"""

_PAGE_SCRIPT = """
    const statusEl = document.getElementById("status");
    const photoInputEl = document.getElementById("photoInput");
    const previewEl = document.getElementById("preview");
    let imageArtifact = null;

    photoInputEl.addEventListener("change", () => {
      const file = photoInputEl.files && photoInputEl.files[0];
      if (!file) { return; }
      const reader = new FileReader();
      reader.onload = () => {
        const dataUrl = String(reader.result || "");
        imageArtifact = { kind: "image", mime_type: file.type || "image/jpeg", base64: dataUrl.split(",")[1] || "" };
        previewEl.src = dataUrl;
        previewEl.hidden = false;
        statusEl.textContent = "Photo attached.";
      };
      reader.onerror = () => { statusEl.textContent = "Failed to read photo."; };
      reader.readAsDataURL(file);
    });

    function buildArtifact() {
      const code = document.getElementById("code").value.trim();
      const lat = document.getElementById("lat").value.trim();
      const lon = document.getElementById("lon").value.trim();
      if (imageArtifact) { return imageArtifact; }
      if (lat && lon) { return { kind: "geo", latitude: Number(lat), longitude: Number(lon) }; }
      if (code) { return { kind: "text", text: code }; }
      return null;
    }

    async function submitDecision(approved) {
      statusEl.textContent = "Submitting...";
      try {
        const response = await fetch("/v1/human-auth/requests/" + encodeURIComponent(requestId) + "/resolve", {
          method: "POST",
          headers: { "content-type": "application/json" },
          body: JSON.stringify({
            token,
            approved,
            note: document.getElementById("note").value || "",
            artifact: approved ? buildArtifact() : null
          })
        });
        const body = await response.json().catch(() => ({}));
        if (!response.ok) {
          statusEl.textContent = "Failed: " + (body.error || response.statusText);
          return;
        }
        statusEl.textContent = approved ? "Approved. You can close this page." : "Rejected. You can close this page.";
      } catch (err) {
        statusEl.textContent = "Request failed: " + (err && err.message ? err.message : String(err));
      }
    }

    document.getElementById("pickPhoto").addEventListener("click", () => { photoInputEl.value = ""; photoInputEl.click(); });
    document.getElementById("approve").addEventListener("click", () => submitDecision(true));
    document.getElementById("reject").addEventListener("click", () => submitDecision(false));
"""

def render_portal_page(record: RelayRecord, token: str) -> str:
    """
    Approve/reject page for one request. Optional proof: a code, a geo fix or a photo.
    """
    def field(value: str, placeholder: str) -> str:
        return html.escape(value or placeholder)

    # json.dumps output is safe inside <script> once "</" is broken up
    request_id_js = json.dumps(record.request_id).replace("</", "<\\/")
    token_js = json.dumps(token).replace("</", "<\\/")

    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>Pocket Pilot Authorization</title>
  <style>{_PAGE_STYLE}</style>
</head>
<body>
  <div class="wrap">
    <div class="card">
      <h1>Authorization Request</h1>
      <div class="muted">Request ID: {html.escape(record.request_id)}</div>
      <div class="meta">
        <div><strong>Task</strong><br/>{field(record.task, "(no task)")}</div>
        <div><strong>Capability</strong><br/>{field(record.capability, "unknown")}</div>
        <div><strong>Instruction</strong><br/>{field(record.instruction, "(no instruction)")}</div>
        <div><strong>Reason</strong><br/>{field(record.reason, "(no reason)")}</div>
        <div><strong>Current App</strong><br/>{field(record.current_app, "unknown")}</div>
      </div>

      <label for="note"><strong>Optional note</strong></label>
      <textarea id="note" placeholder="e.g. Face ID approved"></textarea>

      <label for="code"><strong>Code (SMS / 2FA / QR / voice)</strong></label>
      <input id="code" autocomplete="one-time-code" placeholder="e.g. 493021" />

      <label><strong>Location (optional)</strong></label>
      <input id="lat" inputmode="decimal" placeholder="latitude" />
      <input id="lon" inputmode="decimal" placeholder="longitude" />

      <div class="actions">
        <button id="pickPhoto" type="button">Capture/Upload Photo</button>
      </div>
      <input id="photoInput" type="file" accept="image/*" capture="environment" hidden />
      <img id="preview" alt="Attached photo" hidden />

      <div class="actions">
        <button id="approve" type="button">Approve</button>
        <button id="reject" type="button">Reject</button>
      </div>
      <div class="status" id="status"></div>
    </div>
  </div>
  <script>
    const requestId = {request_id_js};
    const token = {token_js};
{_PAGE_SCRIPT}
  </script>
</body>
</html>"""
